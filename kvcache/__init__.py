from .manager import Cache, create_cache, default_cache
from .config import CacheConfig
from .base import BaseAdapter, Producer
from .clock import NEVER_EXPIRE
from .l1_memory import MemoryAdapter
from .l2_redis import RedisAdapter
from .singleflight import SingleFlight
from .timer import STOP, Timer, default_timer
from .exceptions import CacheError, CacheConfigurationError, BackendConnectionError

__all__ = [
    'Cache',
    'create_cache',
    'default_cache',
    'BaseAdapter',
    'Producer',
    'MemoryAdapter',
    'RedisAdapter',
    'CacheConfig',
    'SingleFlight',
    'Timer',
    'STOP',
    'default_timer',
    'NEVER_EXPIRE',
    'CacheError',
    'CacheConfigurationError',
    'BackendConnectionError'
]
