from __future__ import annotations

from collections.abc import Generator

import redis

from events_board.settings import create_redis, settings_from_env


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis(settings_from_env())
    try:
        yield client
    finally:
        client.close()
