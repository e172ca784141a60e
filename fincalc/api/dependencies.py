"""
API dependencies

Accessors for the services the application lifespan stores on app.state,
and caller identity resolution.
"""

from fastapi import Header, HTTPException, Request, status

from ..constants import MAX_USER_ID_LENGTH
from ..core.config import Settings
from ..services.batch import BatchService


def get_current_user_id(
    x_user_id: str = Header(default="", alias="X-User-Id"),
) -> str:
    """
    Identify the caller from the X-User-Id header.

    Token verification happens upstream; this service only needs the id.
    The id must be usable inside cache keys, so embedded whitespace and
    overlong values are rejected before any operation runs.
    """
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    if len(user_id) > MAX_USER_ID_LENGTH or any(char.isspace() for char in user_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                "X-User-Id must not contain whitespace or exceed "
                f"{MAX_USER_ID_LENGTH} characters"
            ),
        )
    return user_id


def get_batch_service(request: Request) -> BatchService:
    return request.app.state.batch_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
