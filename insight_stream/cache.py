from __future__ import annotations

import json
import os
from hashlib import sha256
from pathlib import Path
from typing import Any

import redis

from insight_stream import settings
from insight_stream.logger import get_logger

logger = get_logger(__name__)


def content_hash(payload: Any) -> str:
    encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return sha256(encoded.encode("utf-8")).hexdigest()


def analysis_cache_key(rows: list[dict[str, Any]], file_name: str, config: dict[str, Any]) -> str:
    digest = content_hash({"rows": rows, "file_name": file_name, "config": config})
    return f"cache:{settings.CACHE_VERSION}:analysis:{digest}"


class CacheManager:
    """JSON cache on disk, mirrored to Redis when ``REDIS_URL`` is reachable."""

    def __init__(self, cache_dir: Path = settings.CACHE_DIR, redis_url: str | None = None) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._redis: redis.Redis | None = None
        redis_url = redis_url or os.getenv("REDIS_URL")
        if redis_url:
            try:
                client = redis.Redis.from_url(redis_url, decode_responses=True)
                client.ping()
                self._redis = client
            except redis.RedisError as exc:
                logger.warning("Redis cache unavailable at %s: %s", redis_url, exc)

    def _file_path(self, key: str) -> Path:
        safe = sha256(key.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{safe}.json"

    def get(self, key: str) -> dict[str, Any] | None:
        if self._redis:
            value = self._redis.get(key)
            if value:
                return json.loads(value)
        path = self._file_path(key)
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
        return None

    def set(self, key: str, value: dict[str, Any], ttl_seconds: int = 86400) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        if self._redis:
            self._redis.setex(key, ttl_seconds, payload)
        self._file_path(key).write_text(payload, encoding="utf-8")

    def invalidate_prefix(self, prefix: str) -> None:
        if self._redis:
            for key in self._redis.scan_iter(match=f"{prefix}*"):
                self._redis.delete(key)
        # File names are hashed, so the prefix cannot be matched on disk.
        for path in self.cache_dir.glob("*.json"):
            path.unlink(missing_ok=True)
