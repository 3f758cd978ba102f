class CacheError(Exception):
    """Base exception for kvcache errors."""
    pass

class CacheConfigurationError(CacheError):
    """Raised for invalid adapter settings, e.g. a negative LRU capacity or an unknown adapter name."""
    pass

class BackendConnectionError(CacheError):
    """Raised when the external backend is unreachable and degrading to memory is disabled."""
    pass
