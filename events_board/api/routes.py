from __future__ import annotations

from typing import Any

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from events_board.api.deps import get_redis
from events_board.api.models import AddEventRequest, CallOutcome, Event, SetGreetingRequest
from events_board.contract_store import call_method, view_method
from events_board.errors import ContractBusyError, StateDecodeError, UnknownMethodError
from events_board.streams import LogStream, read_logs
from events_board.watchers import ContractUpdate, watchers

router = APIRouter()


def _http_error(e: ValueError) -> HTTPException:
    if isinstance(e, UnknownMethodError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ContractBusyError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


async def _commit(r: redis.Redis, contract_id: str, name: str, args: dict[str, Any]) -> CallOutcome:
    """Run a command and tell the contract's watchers once it has committed."""

    try:
        outcome = call_method(r=r, contract_id=contract_id, name=name, args=args)
    except StateDecodeError:
        raise
    except ValueError as e:
        raise _http_error(e) from e

    await watchers.committed(ContractUpdate.from_outcome(contract_id=contract_id, method=name, outcome=outcome))
    return outcome


@router.websocket("/ws/contracts/{contract_id}")
async def watch_contract_ws(websocket: WebSocket, contract_id: str) -> None:
    async with watchers.watching(contract_id, websocket):
        try:
            # Inbound frames are ignored; the socket only carries ContractUpdate pushes.
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            return


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/contracts/{contract_id}/greeting", response_model=str)
async def get_greeting_route(contract_id: str, r: redis.Redis = Depends(get_redis)) -> str:
    return view_method(r=r, contract_id=contract_id, name="get_greeting")


@router.put("/contracts/{contract_id}/greeting", response_model=None)
async def set_greeting_route(
    contract_id: str,
    payload: SetGreetingRequest,
    r: redis.Redis = Depends(get_redis),
) -> None:
    await _commit(r, contract_id, "set_greeting", payload.model_dump(mode="json"))


@router.get("/contracts/{contract_id}/events", response_model=list[Event])
async def get_events_route(contract_id: str, r: redis.Redis = Depends(get_redis)) -> list[Event]:
    return view_method(r=r, contract_id=contract_id, name="get_events")


@router.post("/contracts/{contract_id}/events", response_model=int, status_code=status.HTTP_201_CREATED)
async def add_event_route(
    contract_id: str,
    payload: AddEventRequest,
    r: redis.Redis = Depends(get_redis),
) -> int:
    outcome = await _commit(r, contract_id, "add_event", payload.model_dump(mode="json"))
    return outcome.result


@router.get("/contracts/{contract_id}/view/{method}")
async def generic_view_route(contract_id: str, method: str, r: redis.Redis = Depends(get_redis)) -> Any:
    try:
        result = view_method(r=r, contract_id=contract_id, name=method)
    except StateDecodeError:
        raise
    except ValueError as e:
        raise _http_error(e) from e

    if isinstance(result, list):
        return [ev.model_dump(mode="json") for ev in result]
    return result


@router.post("/contracts/{contract_id}/call/{method}", response_model=CallOutcome)
async def generic_call_route(
    contract_id: str,
    method: str,
    body: dict[str, Any],
    r: redis.Redis = Depends(get_redis),
) -> CallOutcome:
    return await _commit(r, contract_id, method, body)


@router.get("/contracts/{contract_id}/logs")
async def get_contract_logs_route(
    contract_id: str,
    count: int = 20,
    r: redis.Redis = Depends(get_redis),
) -> dict[str, object]:
    """Debug endpoint: read the most recent log lines emitted by commands on a contract."""

    if count < 1 or count > 200:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 200")

    stream = LogStream(contract_id=contract_id)
    return {"contract_id": contract_id, "stream": stream.key, "entries": read_logs(r=r, stream=stream, count=count)}
