from __future__ import annotations

import re
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer, model_validator


U16_MAX = 0xFFFF
U64_MAX = 0xFFFF_FFFF_FFFF_FFFF

_DECIMAL_RE = re.compile(r"[0-9]+")


def _parse_u64(value: Any) -> int:
    # JSON numbers are refused: a client may already have rounded them past 2**53.
    if not isinstance(value, str) or not _DECIMAL_RE.fullmatch(value):
        raise ValueError("expected a decimal string of digits")
    parsed = int(value)
    if parsed > U64_MAX:
        raise ValueError("value out of range for u64")
    return parsed


U64 = Annotated[
    int,
    BeforeValidator(_parse_u64),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]


class EventType(StrEnum):
    CLASS = "Class"
    PARTY = "Party"


class EventLevel(StrEnum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    TEACHER = "Teacher"


class EventInput(BaseModel):
    """Caller-facing event payload. Has no `id`: ids are minted by the contract."""

    title: str
    description: str
    start_time: U64
    end_time: U64
    location: str
    type: EventType
    instructor: str
    level: EventLevel


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, le=U16_MAX)
    title: str
    description: str
    start_time: U64
    end_time: U64
    location: str
    type: EventType
    instructor: str
    level: EventLevel

    @classmethod
    def from_input(cls, *, event_id: int, event: EventInput) -> "Event":
        # Fields are already validated; skip the string-only u64 boundary check.
        return cls.model_construct(id=event_id, **event.model_dump())


class ContractState(BaseModel):
    greeting: str = "Hello"

    # Append-only, insertion order.
    events: list[Event] = Field(default_factory=list)

    # Sole source of new ids; never derived from len(events).
    next_event_id: int = Field(default=1, ge=1, le=U16_MAX)

    @classmethod
    def default(cls) -> "ContractState":
        return cls()

    @model_validator(mode="after")
    def _check_counter_ahead_of_ids(self) -> "ContractState":
        if self.events and max(e.id for e in self.events) >= self.next_event_id:
            raise ValueError("next_event_id must be greater than every stored event id")
        return self


class SetGreetingRequest(BaseModel):
    greeting: str


class AddEventRequest(BaseModel):
    event: EventInput


class EmptyArgs(BaseModel):
    pass


class CallOutcome(BaseModel):
    """Result of a command, the log lines it emitted and the counter it left behind."""

    result: Any = None
    logs: list[str] = Field(default_factory=list)
    next_event_id: int
