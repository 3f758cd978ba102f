import pickle
from typing import Any, Dict, Hashable, List, Optional, Tuple

import redis

from .base import BaseAdapter, Producer, is_producer
from .clock import Duration, to_millis


class RedisAdapter(BaseAdapter):
    """
    Adapter backed by a Redis server.

    Values are pickled and keys are stringified under `key_prefix`. A zero
    duration stores the key without a TTL. Listing operations scan the prefix
    and are not atomic across keys. Producers of the `*_func_lock` variants run
    without a server-side lock; the Cache facade collapses concurrent calls
    inside one process. Client errors propagate unchanged.
    """

    def __init__(
        self,
        host: str = 'localhost',
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        key_prefix: str = "kvcache:",
        redis_client: Optional[redis.Redis] = None
    ):
        self.key_prefix = key_prefix

        if redis_client is not None:
            self._redis = redis_client
        else:
            self._redis = redis.Redis(
                host=host,
                port=port,
                db=db,
                password=password,
                decode_responses=False
            )

    def _make_key(self, key: Hashable) -> str:
        return f"{self.key_prefix}{key}"

    def _strip_key(self, redis_key: Any) -> str:
        if isinstance(redis_key, bytes):
            redis_key = redis_key.decode("utf-8")
        return redis_key[len(self.key_prefix):]

    def _loads(self, data: Optional[bytes]) -> Any:
        if data is None:
            return None
        try:
            return pickle.loads(data)
        except pickle.UnpicklingError:
            return None

    def _scan_keys(self) -> List[bytes]:
        return list(self._redis.scan_iter(match=f"{self.key_prefix}*", count=1000))

    def ping(self) -> bool:
        return bool(self._redis.ping())

    def set(self, key: Hashable, value: Any, duration: Duration = 0) -> None:
        millis = to_millis(duration)
        redis_key = self._make_key(key)
        if value is None or millis < 0:
            self._redis.delete(redis_key)
        elif millis == 0:
            self._redis.set(redis_key, pickle.dumps(value))
        else:
            self._redis.set(redis_key, pickle.dumps(value), px=millis)

    def set_map(self, data: Dict[Hashable, Any], duration: Duration = 0) -> None:
        if not data:
            return
        millis = to_millis(duration)
        pipe = self._redis.pipeline()
        for key, value in data.items():
            redis_key = self._make_key(key)
            if value is None or millis < 0:
                pipe.delete(redis_key)
            elif millis == 0:
                pipe.set(redis_key, pickle.dumps(value))
            else:
                pipe.set(redis_key, pickle.dumps(value), px=millis)
        pipe.execute()

    def set_if_not_exist(self, key: Hashable, value: Any, duration: Duration = 0) -> bool:
        if is_producer(value):
            value = value()
        millis = to_millis(duration)
        redis_key = self._make_key(key)
        if value is None or millis < 0:
            return bool(self._redis.delete(redis_key))
        if millis == 0:
            return bool(self._redis.set(redis_key, pickle.dumps(value), nx=True))
        return bool(self._redis.set(redis_key, pickle.dumps(value), nx=True, px=millis))

    def set_if_not_exist_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        if self.contains(key):
            return False
        return self.set_if_not_exist(key, f(), duration)

    def set_if_not_exist_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        return self.set_if_not_exist_func(key, f, duration)

    def get(self, key: Hashable) -> Any:
        return self._loads(self._redis.get(self._make_key(key)))

    def get_or_set(self, key: Hashable, value: Any, duration: Duration = 0) -> Any:
        result = self.get(key)
        if result is not None:
            return result
        if is_producer(value):
            value = value()
            if value is None:
                return None
        self.set(key, value, duration)
        return value

    def get_or_set_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        result = self.get(key)
        if result is not None:
            return result
        value = f()
        if value is None:
            return None
        self.set(key, value, duration)
        return value

    def get_or_set_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        return self.get_or_set_func(key, f, duration)

    def contains(self, key: Hashable) -> bool:
        return bool(self._redis.exists(self._make_key(key)))

    def get_expire(self, key: Hashable) -> float:
        pttl = self._redis.pttl(self._make_key(key))
        if pttl == -1:
            return 0
        if pttl in (-2, 0):
            # Missing or expired.
            return -1
        return pttl / 1000

    def update(self, key: Hashable, value: Any) -> Tuple[Any, bool]:
        redis_key = self._make_key(key)
        pttl = self._redis.pttl(redis_key)
        if pttl in (-2, 0):
            return None, False
        old = self.get(key)
        if value is None:
            self._redis.delete(redis_key)
        elif pttl == -1:
            self._redis.set(redis_key, pickle.dumps(value))
        else:
            self._redis.set(redis_key, pickle.dumps(value), px=pttl)
        return old, True

    def update_expire(self, key: Hashable, duration: Duration) -> float:
        redis_key = self._make_key(key)
        pttl = self._redis.pttl(redis_key)
        if pttl in (-2, 0):
            return -1
        old = 0 if pttl == -1 else pttl / 1000
        millis = to_millis(duration)
        if millis < 0:
            self._redis.delete(redis_key)
        elif millis == 0:
            self._redis.persist(redis_key)
        else:
            self._redis.pexpire(redis_key, millis)
        return old

    def remove(self, *keys: Hashable) -> Any:
        if not keys:
            return None
        redis_keys = [self._make_key(k) for k in keys]
        last_value = self._loads(self._redis.get(redis_keys[-1]))
        self._redis.delete(*redis_keys)
        return last_value

    def size(self) -> int:
        return len(self._scan_keys())

    def keys(self) -> List[Hashable]:
        return [self._strip_key(k) for k in self._scan_keys()]

    def values(self) -> List[Any]:
        return list(self.data().values())

    def data(self) -> Dict[Hashable, Any]:
        redis_keys = self._scan_keys()
        if not redis_keys:
            return {}
        result = {}
        for redis_key, raw in zip(redis_keys, self._redis.mget(redis_keys)):
            if raw is not None:
                result[self._strip_key(redis_key)] = self._loads(raw)
        return result

    def clear(self) -> None:
        cursor = 0
        pattern = f"{self.key_prefix}*"
        while True:
            cursor, keys = self._redis.scan(cursor=cursor, match=pattern, count=1000)
            if keys:
                self._redis.delete(*keys)
            if cursor == 0:
                break

    def close(self) -> None:
        self._redis.close()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "type": "redis",
            "prefix": self.key_prefix,
            "size": self.size(),
        }
