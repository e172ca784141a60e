"""
Fincalc - calculation scheduling, result caching and batch admission
for the personal finance planner.
"""

__version__ = "0.1.0"
