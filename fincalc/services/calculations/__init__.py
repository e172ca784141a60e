"""
Calculation services

The client-facing facade lives in calculation_service and is imported from
there; it depends on the queue package, which itself depends on the engine.
"""

from .engine import CalculationEngine, CalculationFunction

__all__ = ["CalculationEngine", "CalculationFunction"]
