"""
Result cache service
"""

from .result_cache import ResultCache, CacheMiss

__all__ = ["ResultCache", "CacheMiss"]
