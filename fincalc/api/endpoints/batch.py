"""
Batch operations API endpoints

- POST /batch/operations: heterogeneous CRUD operations under a concurrency cap
- POST /batch/accounts/balances: sequential account balance updates
- GET /batch/status: advertised limits for client-side throttling
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...services.batch import (
    BalanceUpdateRequest,
    BalanceUpdateResponse,
    BatchRequest,
    BatchResponse,
    BatchService,
    BatchStatus,
)
from ..dependencies import get_batch_service, get_current_user_id

logger = structlog.get_logger()
router = APIRouter(prefix="/batch", tags=["batch"])


@router.post(
    "/operations",
    response_model=BatchResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Empty or oversized batch"},
        status.HTTP_408_REQUEST_TIMEOUT: {"description": "Partial results after timeout"},
    },
)
async def execute_batch(
    request: BatchRequest,
    user_id: str = Depends(get_current_user_id),
    service: BatchService = Depends(get_batch_service),
) -> JSONResponse:
    """
    Execute a batch of operations.

    Returns 200 once every operation is accounted for, or 408 with the
    results gathered so far when the aggregate timeout elapses.
    """
    logger.info(
        "Batch received",
        user_id=user_id,
        operations=len(request.operations),
        continue_on_error=request.options.continue_on_error,
    )

    response = await service.execute_batch(request, user_id)

    status_code = (
        status.HTTP_408_REQUEST_TIMEOUT
        if response.status is BatchStatus.TIMEOUT
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


@router.post("/accounts/balances", response_model=BalanceUpdateResponse)
async def update_balances(
    request: BalanceUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    service: BatchService = Depends(get_batch_service),
) -> BalanceUpdateResponse:
    """Apply balance updates to several accounts in one request."""
    logger.info("Balance batch received", user_id=user_id, updates=len(request.updates))
    return await service.update_balances(request, user_id)


@router.get("/status")
async def batch_status(
    user_id: str = Depends(get_current_user_id),
    service: BatchService = Depends(get_batch_service),
) -> Dict[str, Any]:
    return service.status()
