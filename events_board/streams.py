from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import cast

import redis


@dataclass(frozen=True, slots=True)
class LogStream:
    contract_id: str

    @property
    def key(self) -> str:
        return f"logs:contract:{self.contract_id}"


def publish_logs(
    *,
    pipe: redis.client.Pipeline,
    stream: LogStream,
    method: str,
    logs: list[str],
    maxlen: int,
) -> None:
    """Queue one capped stream entry per log line on `pipe`.

    Nothing is written until the caller executes the pipeline, so the entries
    commit together with whatever else the pipeline carries.
    """

    ts = datetime.now(tz=UTC).isoformat()
    for line in logs:
        pipe.xadd(stream.key, {"method": method, "log": line, "ts": ts}, maxlen=maxlen, approximate=True)


def read_logs(*, r: redis.Redis, stream: LogStream, count: int) -> list[dict[str, object]]:
    """Most recent `count` entries, oldest first."""

    entries = r.xrevrange(stream.key, count=count)
    out: list[dict[str, object]] = []
    for entry_id, fields in reversed(entries):
        out.append({"id": _as_str(entry_id), "fields": {_as_str(k): _as_str(v) for k, v in fields.items()}})
    return out


def _as_str(value: object) -> str:
    # Clients may or may not be configured with decode_responses.
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return cast(str, value)
