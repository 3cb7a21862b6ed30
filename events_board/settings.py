from __future__ import annotations

import os
from dataclasses import dataclass

import redis


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str
    log_level: str
    # Expiry of the per-contract command lock; bounds how long a crashed holder blocks writes.
    lock_ttl_ms: int
    # Approximate cap on entries kept in each contract's log stream.
    log_stream_maxlen: int


def settings_from_env() -> Settings:
    return Settings(
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        log_level=os.environ.get("EVENTS_BOARD_LOG_LEVEL", "INFO").upper(),
        lock_ttl_ms=int(os.environ.get("EVENTS_BOARD_LOCK_TTL_MS", "5000")),
        log_stream_maxlen=int(os.environ.get("EVENTS_BOARD_LOG_STREAM_MAXLEN", "10000")),
    )


def create_redis(settings: Settings) -> redis.Redis:
    # Contract state is a binary blob, so responses stay as bytes.
    return redis.Redis.from_url(settings.redis_url, decode_responses=False)
