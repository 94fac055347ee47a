"""Cache subsystem: checksum-validated analysis results over a pluggable store."""

from screenscope.cache.keys import build_cache_key, combine_checksums, generate_checksums
from screenscope.cache.manager import AnalysisCache
from screenscope.cache.stats import CacheStats
from screenscope.cache.validator import compare_checksums, validate_entry

__all__ = [
    "AnalysisCache",
    "CacheStats",
    "build_cache_key",
    "combine_checksums",
    "compare_checksums",
    "generate_checksums",
    "validate_entry",
]
