from __future__ import annotations

import fakeredis
import pytest
import redis
from pydantic import ValidationError

from events_board.api.models import ContractState
from events_board.codec import encode_state
from events_board.contract_store import _contract_key, call_method, load_state, save_state, view_method
from events_board.errors import ContractBusyError, EventIdExhaustedError, StateDecodeError, UnknownMethodError
from events_board.lock import contract_lock
from events_board.streams import LogStream, publish_logs


def _event(title: str, **overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "title": title,
        "description": "",
        "start_time": "1000",
        "end_time": "2000",
        "location": "Hall",
        "type": "Class",
        "instructor": "Sam",
        "level": "Beginner",
    }
    data.update(overrides)
    return data


def test_views_on_fresh_contract_return_defaults_without_writing(r: fakeredis.FakeRedis) -> None:
    assert view_method(r=r, contract_id="c1", name="get_greeting") == "Hello"
    assert view_method(r=r, contract_id="c1", name="get_events") == []

    assert r.get(_contract_key("c1")) is None


def test_call_persists_whole_aggregate(r: fakeredis.FakeRedis) -> None:
    outcome = call_method(r=r, contract_id="c1", name="set_greeting", args={"greeting": "howdy"})
    assert outcome.result is None
    assert outcome.logs == ["Saving greeting: howdy"]

    outcome = call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Event 1")})
    assert outcome.result == 1

    state = load_state(r=r, contract_id="c1")
    assert state.greeting == "howdy"
    assert [e.title for e in state.events] == ["Event 1"]
    assert state.next_event_id == 2


def test_ids_keep_increasing_across_invocations(r: fakeredis.FakeRedis) -> None:
    ids = [call_method(r=r, contract_id="c1", name="add_event", args={"event": _event(f"e{i}")}).result for i in range(5)]

    assert ids == [1, 2, 3, 4, 5]
    events = view_method(r=r, contract_id="c1", name="get_events")
    assert [e.id for e in events] == [1, 2, 3, 4, 5]


def test_contracts_are_independent(r: fakeredis.FakeRedis) -> None:
    call_method(r=r, contract_id="a", name="add_event", args={"event": _event("only in a")})

    assert call_method(r=r, contract_id="b", name="add_event", args={"event": _event("b")}).result == 1
    assert view_method(r=r, contract_id="b", name="get_greeting") == "Hello"


def test_rejected_event_does_not_touch_state(r: fakeredis.FakeRedis) -> None:
    call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Event 1")})
    before = r.get(_contract_key("c1"))

    with pytest.raises(ValidationError):
        call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("bad", type="Unknown")})

    assert r.get(_contract_key("c1")) == before
    assert call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Event 2")}).result == 2


def test_exhausted_counter_fails_without_persisting(r: fakeredis.FakeRedis) -> None:
    save_state(r=r, contract_id="c1", state=ContractState(next_event_id=0xFFFF))
    before = r.get(_contract_key("c1"))

    with pytest.raises(EventIdExhaustedError):
        call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("late")})

    assert r.get(_contract_key("c1")) == before
    assert r.xlen("logs:contract:c1") == 0


def test_call_rejects_view_methods_and_unknown_names(r: fakeredis.FakeRedis) -> None:
    with pytest.raises(UnknownMethodError):
        call_method(r=r, contract_id="c1", name="get_events", args={})
    with pytest.raises(UnknownMethodError):
        call_method(r=r, contract_id="c1", name="delete_event", args={"id": 1})
    with pytest.raises(UnknownMethodError):
        view_method(r=r, contract_id="c1", name="set_greeting")

    assert r.get(_contract_key("c1")) is None


def test_call_fails_while_contract_is_locked(r: fakeredis.FakeRedis) -> None:
    with contract_lock(r=r, contract_id="c1"):
        with pytest.raises(ContractBusyError):
            call_method(r=r, contract_id="c1", name="set_greeting", args={"greeting": "hi"})

    assert view_method(r=r, contract_id="c1", name="get_greeting") == "Hello"
    call_method(r=r, contract_id="c1", name="set_greeting", args={"greeting": "hi"})
    assert view_method(r=r, contract_id="c1", name="get_greeting") == "hi"


def test_corrupt_blob_is_reported(r: fakeredis.FakeRedis) -> None:
    r.set(_contract_key("c1"), encode_state(ContractState.default()) + b"junk")

    with pytest.raises(StateDecodeError):
        view_method(r=r, contract_id="c1", name="get_greeting")


def test_logs_are_published_to_contract_stream(r: fakeredis.FakeRedis) -> None:
    call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Swing Night")})

    entries = r.xrange("logs:contract:c1")
    assert len(entries) == 1
    _, fields = entries[0]
    assert fields[b"method"] == b"add_event"
    assert fields[b"log"] == b"Adding new event: Swing Night"


def test_failed_log_write_leaves_state_unchanged(r: fakeredis.FakeRedis, monkeypatch: pytest.MonkeyPatch) -> None:
    call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Event 1")})
    before = r.get(_contract_key("c1"))

    def _xadd_fails(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        raise redis.ConnectionError("stream unavailable")

    monkeypatch.setattr(redis.client.Pipeline, "xadd", _xadd_fails)

    with pytest.raises(redis.ConnectionError):
        call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Event 2")})

    assert r.get(_contract_key("c1")) == before
    assert r.xlen("logs:contract:c1") == 1
    assert not r.exists("lock:contract:c1")

    monkeypatch.undo()
    assert call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Event 2")}).result == 2


def test_connection_lost_before_commit_leaves_nothing_behind(
    r: fakeredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _execute_fails(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        raise redis.ConnectionError("connection reset")

    monkeypatch.setattr(redis.client.Pipeline, "execute", _execute_fails)

    with pytest.raises(redis.ConnectionError):
        call_method(r=r, contract_id="c1", name="set_greeting", args={"greeting": "lost"})

    assert r.get(_contract_key("c1")) is None
    assert r.xlen("logs:contract:c1") == 0


def test_call_outcome_reports_counter(r: fakeredis.FakeRedis) -> None:
    outcome = call_method(r=r, contract_id="c1", name="add_event", args={"event": _event("Event 1")})
    assert outcome.next_event_id == 2

    outcome = call_method(r=r, contract_id="c1", name="set_greeting", args={"greeting": "hi"})
    assert outcome.next_event_id == 2


def test_log_stream_is_capped(r: fakeredis.FakeRedis) -> None:
    stream = LogStream(contract_id="c1")

    with r.pipeline(transaction=True) as pipe:
        publish_logs(pipe=pipe, stream=stream, method="set_greeting", logs=[f"line {i}" for i in range(500)], maxlen=10)
        pipe.execute()

    # Trimming is approximate, so only an upper bound is meaningful.
    assert 10 <= r.xlen(stream.key) < 200


def test_log_stream_cap_comes_from_environment(r: fakeredis.FakeRedis, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[int] = []

    def _recording_publish(**kwargs):  # type: ignore[no-untyped-def]
        seen.append(kwargs["maxlen"])
        publish_logs(**kwargs)

    monkeypatch.setenv("EVENTS_BOARD_LOG_STREAM_MAXLEN", "25")
    monkeypatch.setattr("events_board.contract_store.publish_logs", _recording_publish)

    call_method(r=r, contract_id="c1", name="set_greeting", args={"greeting": "hi"})

    assert seen == [25]
    assert r.xlen("logs:contract:c1") == 1
