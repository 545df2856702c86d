from .response import CacheEntry, CacheKey, DataKind, ResponseCache

__all__ = ["CacheEntry", "CacheKey", "DataKind", "ResponseCache"]
