import logging

from fastapi import FastAPI

from events_board.api.routes import router
from events_board.settings import settings_from_env

# Configure logging
logging.basicConfig(level=settings_from_env().log_level)

app = FastAPI(title="events-board", version="0.1.0")
app.include_router(router)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "events-board", "version": "0.1.0"}
