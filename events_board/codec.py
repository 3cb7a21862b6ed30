"""Persisted (binary) encoding of `ContractState`.

Layout is Borsh-style and little-endian, fields in declaration order:

    ContractState: greeting:string  events:vec<Event>  next_event_id:u16
    Event:         id:u16  title:string  description:string  start_time:u64
                   end_time:u64  location:string  type:u8  instructor:string
                   level:u8

`string` is a u32 byte length followed by UTF-8 bytes; `vec` is a u32 count
followed by the items. Enum discriminants come from the tables below and must
never be renumbered: stored blobs depend on them.

This codec is written against the models independently of their JSON shape,
so renaming an exchange-format field can't silently change stored data.
"""

from __future__ import annotations

import struct

from pydantic import ValidationError

from events_board.api.models import ContractState, Event, EventLevel, EventType
from events_board.errors import StateDecodeError


_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")

EVENT_TYPE_TAGS: dict[EventType, int] = {
    EventType.CLASS: 0,
    EventType.PARTY: 1,
}

EVENT_LEVEL_TAGS: dict[EventLevel, int] = {
    EventLevel.BEGINNER: 0,
    EventLevel.INTERMEDIATE: 1,
    EventLevel.ADVANCED: 2,
    EventLevel.TEACHER: 3,
}

_EVENT_TYPE_BY_TAG = {tag: v for v, tag in EVENT_TYPE_TAGS.items()}
_EVENT_LEVEL_BY_TAG = {tag: v for v, tag in EVENT_LEVEL_TAGS.items()}


def _pack_str(out: bytearray, value: str) -> None:
    raw = value.encode("utf-8")
    out += _U32.pack(len(raw))
    out += raw


def _pack_event(out: bytearray, event: Event) -> None:
    out += _U16.pack(event.id)
    _pack_str(out, event.title)
    _pack_str(out, event.description)
    out += _U64.pack(event.start_time)
    out += _U64.pack(event.end_time)
    _pack_str(out, event.location)
    out += _U8.pack(EVENT_TYPE_TAGS[event.type])
    _pack_str(out, event.instructor)
    out += _U8.pack(EVENT_LEVEL_TAGS[event.level])


def encode_state(state: ContractState) -> bytes:
    out = bytearray()
    _pack_str(out, state.greeting)
    out += _U32.pack(len(state.events))
    for event in state.events:
        _pack_event(out, event)
    out += _U16.pack(state.next_event_id)
    return bytes(out)


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self._pos = 0

    def _take(self, n: int) -> memoryview:
        end = self._pos + n
        if end > len(self._data):
            raise StateDecodeError(f"unexpected end of data at offset {self._pos} (need {n} bytes)")
        chunk = self._data[self._pos : end]
        self._pos = end
        return chunk

    def _unpack(self, fmt: struct.Struct) -> int:
        return fmt.unpack(self._take(fmt.size))[0]

    def u8(self) -> int:
        return self._unpack(_U8)

    def u16(self) -> int:
        return self._unpack(_U16)

    def u32(self) -> int:
        return self._unpack(_U32)

    def u64(self) -> int:
        return self._unpack(_U64)

    def string(self) -> str:
        raw = self._take(self.u32())
        try:
            return bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise StateDecodeError(f"invalid UTF-8 in string field: {e}") from e

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise StateDecodeError(f"{len(self._data) - self._pos} trailing bytes after state")


def _read_event(r: _Reader) -> Event:
    event_id = r.u16()
    title = r.string()
    description = r.string()
    start_time = r.u64()
    end_time = r.u64()
    location = r.string()

    type_tag = r.u8()
    if type_tag not in _EVENT_TYPE_BY_TAG:
        raise StateDecodeError(f"unknown EventType discriminant: {type_tag}")

    instructor = r.string()

    level_tag = r.u8()
    if level_tag not in _EVENT_LEVEL_BY_TAG:
        raise StateDecodeError(f"unknown EventLevel discriminant: {level_tag}")

    # Values come straight off the wire as ints and tagged enums.
    return Event.model_construct(
        id=event_id,
        title=title,
        description=description,
        start_time=start_time,
        end_time=end_time,
        location=location,
        type=_EVENT_TYPE_BY_TAG[type_tag],
        instructor=instructor,
        level=_EVENT_LEVEL_BY_TAG[level_tag],
    )


def decode_state(data: bytes) -> ContractState:
    r = _Reader(data)
    greeting = r.string()
    events = [_read_event(r) for _ in range(r.u32())]
    next_event_id = r.u16()
    r.finish()

    try:
        return ContractState(greeting=greeting, events=events, next_event_id=next_event_id)
    except ValidationError as e:
        raise StateDecodeError(f"persisted state violates invariants: {e}") from e
