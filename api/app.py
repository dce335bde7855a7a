from __future__ import annotations

import asyncio
import json
import logging

from fastapi import FastAPI, Request
from sse_starlette.sse import EventSourceResponse

from api.routers import harvest

log = logging.getLogger(__name__)


class Broadcaster:
    """In-memory SSE fan-out of harvest events.

    Each listener gets its own bounded queue; the runner publishes one
    ``harvest_complete`` dict (mode, url, item and error counts, stop reason)
    per finished harvest. Events for a listener whose queue is full are dropped.
    """

    def __init__(self) -> None:
        self._listeners: list[asyncio.Queue] = []

    async def broadcast(self, data: dict) -> None:
        for q in list(self._listeners):
            try:
                q.put_nowait(data)
            except asyncio.QueueFull:
                log.debug("Dropping event for a slow listener: %s", data.get("event"))

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=50)
        self._listeners.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        if q in self._listeners:
            self._listeners.remove(q)


def create_app() -> FastAPI:
    app = FastAPI(title="Review Harvester", version="0.1.0")
    broadcaster = Broadcaster()
    app.state.broadcaster = broadcaster

    app.include_router(harvest.router)

    # SSE endpoint
    @app.get("/api/events")
    async def sse_events(request: Request):
        q = broadcaster.subscribe()

        async def event_generator():
            try:
                while True:
                    if await request.is_disconnected():
                        break
                    try:
                        data = await asyncio.wait_for(q.get(), timeout=30.0)
                        yield {"event": "message", "data": json.dumps(data)}
                    except asyncio.TimeoutError:
                        yield {"event": "ping", "data": ""}
            finally:
                broadcaster.unsubscribe(q)

        return EventSourceResponse(event_generator())

    # Health check
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app
