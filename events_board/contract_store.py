from __future__ import annotations

import logging
from typing import Any

import redis

from events_board.api.models import CallOutcome, ContractState
from events_board.codec import decode_state, encode_state
from events_board.contract import ExecutionContext, require_method
from events_board.lock import contract_lock
from events_board.settings import settings_from_env
from events_board.streams import LogStream, publish_logs


logger = logging.getLogger(__name__)

CONTRACT_KEY_PREFIX = "events_board:contract:"  # + {contract_id}


def _contract_key(contract_id: str) -> str:
    return f"{CONTRACT_KEY_PREFIX}{contract_id}"


def load_state(*, r: redis.Redis, contract_id: str) -> ContractState:
    """Load the persisted aggregate, or a fresh default one if nothing was saved yet."""

    raw = r.get(_contract_key(contract_id))
    if raw is None:
        return ContractState.default()
    if isinstance(raw, str):
        raise TypeError("Redis client must be created with decode_responses=False")
    return decode_state(raw)


def save_state(*, r: redis.Redis | redis.client.Pipeline, contract_id: str, state: ContractState) -> None:
    # Whole aggregate in a single SET; readers see either the old or the new blob.
    r.set(_contract_key(contract_id), encode_state(state))


def view_method(*, r: redis.Redis, contract_id: str, name: str, args: dict[str, Any] | None = None) -> Any:
    """Run a query. Never writes."""

    method = require_method(name=name, kind="view")
    parsed = method.args_model.model_validate(args or {})
    state = load_state(r=r, contract_id=contract_id)
    return method.run(state, parsed, ExecutionContext(contract_id=contract_id))


def call_method(*, r: redis.Redis, contract_id: str, name: str, args: dict[str, Any] | None = None) -> CallOutcome:
    """Run a command: decode args, load, mutate, then commit state and logs together.

    The new blob and its log stream entries go out in one MULTI/EXEC, so a
    failure anywhere before EXEC leaves Redis exactly as it was.
    """

    method = require_method(name=name, kind="call")
    # Decode errors surface here, before the state is even loaded.
    parsed = method.args_model.model_validate(args or {})
    settings = settings_from_env()

    with contract_lock(r=r, contract_id=contract_id, ttl_ms=settings.lock_ttl_ms):
        state = load_state(r=r, contract_id=contract_id)
        ctx = ExecutionContext(contract_id=contract_id)

        result = method.run(state, parsed, ctx)

        with r.pipeline(transaction=True) as pipe:
            save_state(r=pipe, contract_id=contract_id, state=state)
            publish_logs(
                pipe=pipe,
                stream=LogStream(contract_id=contract_id),
                method=name,
                logs=ctx.logs,
                maxlen=settings.log_stream_maxlen,
            )
            pipe.execute()

    logger.debug("contract %s: %s committed (next_event_id=%d)", contract_id, name, state.next_event_id)
    return CallOutcome(result=result, logs=ctx.logs, next_event_id=state.next_event_id)
