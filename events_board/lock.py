from __future__ import annotations

from contextlib import contextmanager

import redis

from events_board.errors import ContractBusyError
from events_board.settings import settings_from_env


@contextmanager
def contract_lock(*, r: redis.Redis, contract_id: str, ttl_ms: int | None = None):
    """Per-contract lock held across a command's load, mutate and commit."""

    key = f"lock:contract:{contract_id}"
    if ttl_ms is None:
        ttl_ms = settings_from_env().lock_ttl_ms

    if not r.set(key, "1", nx=True, px=ttl_ms):
        raise ContractBusyError("Contract is busy")
    try:
        yield
    finally:
        r.delete(key)
