from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class CacheConfig(BaseSettings):
    # General
    ADAPTER: str = "memory"  # "memory" or "redis"
    CACHE_PREFIX: str = "kvcache:"
    AUTO_DETECT_REDIS: bool = True
    DEGRADE_ON_REDIS_UNAVAILABLE: bool = True

    # Memory adapter
    LRU_CAPACITY: int = 0  # 0 disables LRU eviction
    JANITOR_INTERVAL: float = 1.0  # seconds between expiry sweeps
    JANITOR_SCAN_WINDOW: int = 5  # elapsed one-second buckets swept per tick

    # Redis adapter
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="KVCACHE_",
        extra="ignore"
    )
