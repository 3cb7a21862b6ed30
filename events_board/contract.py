from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from events_board.api.models import (
    U16_MAX,
    AddEventRequest,
    ContractState,
    EmptyArgs,
    Event,
    EventInput,
    SetGreetingRequest,
)
from events_board.errors import EventIdExhaustedError, UnknownMethodError


logger = logging.getLogger(__name__)

MethodKind = Literal["view", "call"]


@dataclass(slots=True)
class ExecutionContext:
    """Collects the log lines a single invocation emits.

    Every line is also written to the module logger.
    """

    contract_id: str = ""
    logs: list[str] = field(default_factory=list)

    def log(self, message: str) -> None:
        logger.info("[%s] %s", self.contract_id or "-", message)
        self.logs.append(message)


def get_greeting(*, state: ContractState) -> str:
    return state.greeting


def set_greeting(*, state: ContractState, greeting: str, ctx: ExecutionContext | None = None) -> None:
    ctx = ctx or ExecutionContext()
    ctx.log(f"Saving greeting: {greeting}")
    state.greeting = greeting


def add_event(*, state: ContractState, event: EventInput, ctx: ExecutionContext | None = None) -> int:
    """Store `event` under the next id and return that id.

    The only writer of `next_event_id`. Fails before any mutation once the
    counter reaches the top of the u16 range.
    """

    ctx = ctx or ExecutionContext()

    assigned_id = state.next_event_id
    if assigned_id >= U16_MAX:
        raise EventIdExhaustedError(f"No event ids left (next_event_id={assigned_id})")

    new_event = Event.from_input(event_id=assigned_id, event=event)

    state.next_event_id = assigned_id + 1
    state.events.append(new_event)

    ctx.log(f"Adding new event: {new_event.title}")
    return assigned_id


def get_events(*, state: ContractState) -> list[Event]:
    # Events are frozen; a fresh list keeps callers away from the stored sequence.
    return list(state.events)


@dataclass(frozen=True, slots=True)
class Method:
    name: str
    kind: MethodKind
    args_model: type[BaseModel]
    run: Callable[[ContractState, Any, ExecutionContext], Any]


METHODS: dict[str, Method] = {
    m.name: m
    for m in [
        Method(
            name="get_greeting",
            kind="view",
            args_model=EmptyArgs,
            run=lambda state, args, ctx: get_greeting(state=state),
        ),
        Method(
            name="set_greeting",
            kind="call",
            args_model=SetGreetingRequest,
            run=lambda state, args, ctx: set_greeting(state=state, greeting=args.greeting, ctx=ctx),
        ),
        Method(
            name="add_event",
            kind="call",
            args_model=AddEventRequest,
            run=lambda state, args, ctx: add_event(state=state, event=args.event, ctx=ctx),
        ),
        Method(
            name="get_events",
            kind="view",
            args_model=EmptyArgs,
            run=lambda state, args, ctx: get_events(state=state),
        ),
    ]
}


def require_method(*, name: str, kind: MethodKind) -> Method:
    method = METHODS.get(name)
    if method is None:
        raise UnknownMethodError(f"Unknown method: {name}")
    if method.kind != kind:
        raise UnknownMethodError(f"'{name}' is not a {kind} method")
    return method
