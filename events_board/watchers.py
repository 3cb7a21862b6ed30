from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Literal

from fastapi import WebSocket
from pydantic import BaseModel

from events_board.api.models import CallOutcome


logger = logging.getLogger(__name__)


class ContractUpdate(BaseModel):
    """Pushed to watchers after a command commits.

    Carries the command's result and the new counter so a calendar view can
    tell whether it needs to re-fetch `get_events`.
    """

    type: Literal["contract_updated"] = "contract_updated"
    contract_id: str
    method: str
    result: Any = None
    next_event_id: int

    @classmethod
    def from_outcome(cls, *, contract_id: str, method: str, outcome: CallOutcome) -> "ContractUpdate":
        return cls(contract_id=contract_id, method=method, result=outcome.result, next_event_id=outcome.next_event_id)


class ContractWatchers:
    """Sockets watching each contract, all on the app's event loop."""

    def __init__(self) -> None:
        self._watchers: dict[str, set[WebSocket]] = {}

    @asynccontextmanager
    async def watching(self, contract_id: str, websocket: WebSocket) -> AsyncIterator[None]:
        await websocket.accept()
        self._watchers.setdefault(contract_id, set()).add(websocket)
        try:
            yield
        finally:
            self._forget(contract_id, websocket)

    def _forget(self, contract_id: str, websocket: WebSocket) -> None:
        sockets = self._watchers.get(contract_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._watchers[contract_id]

    async def committed(self, update: ContractUpdate) -> None:
        sockets = list(self._watchers.get(update.contract_id, ()))
        if not sockets:
            return

        message = update.model_dump(mode="json")
        results = await asyncio.gather(*(ws.send_json(message) for ws in sockets), return_exceptions=True)
        for ws, res in zip(sockets, results):
            if isinstance(res, Exception):
                logger.debug("dropping watcher of %s: %s", update.contract_id, res)
                self._forget(update.contract_id, ws)


watchers = ContractWatchers()
