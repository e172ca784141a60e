"""
Calculation Engine

Registry mapping calculation types to the pure functions that compute them.
Functions may be plain callables or coroutine functions; they receive the
parameter dict and return a JSON-serializable result or raise.
"""

import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from ...core.exceptions import UnsupportedOperationException
from ...domain.calculations import CalculationType

CalculationFunction = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class CalculationEngine:
    """Dispatches parameters to the registered function for a type."""

    def __init__(
        self,
        functions: Optional[Dict[Union[str, CalculationType], CalculationFunction]] = None,
    ):
        self._functions: Dict[CalculationType, CalculationFunction] = {}
        for calculation_type, function in (functions or {}).items():
            self.register(calculation_type, function)

    def register(
        self, calculation_type: Union[str, CalculationType], function: CalculationFunction
    ) -> None:
        self._functions[CalculationType(calculation_type)] = function

    def supports(self, calculation_type: Union[str, CalculationType]) -> bool:
        try:
            return CalculationType(calculation_type) in self._functions
        except ValueError:
            return False

    async def compute(
        self, calculation_type: Union[str, CalculationType], params: Dict[str, Any]
    ) -> Any:
        """
        Run the function registered for calculation_type.

        Raises:
            UnsupportedOperationException: No function for the type
        """
        try:
            function = self._functions[CalculationType(calculation_type)]
        except (ValueError, KeyError):
            raise UnsupportedOperationException(
                f"Unsupported calculation type: {getattr(calculation_type, 'value', calculation_type)}",
                kind=str(getattr(calculation_type, "value", calculation_type)),
            )

        result = function(params)
        if inspect.isawaitable(result):
            result = await result
        return result
