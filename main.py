"""Review Harvester — entry point."""

from __future__ import annotations

import logging

import uvicorn

from api.app import create_app
from api.routers.harvest import set_runner
from config.settings import settings
from harvesting.runner import HarvestRunner

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
log = logging.getLogger(__name__)

app = create_app()


@app.on_event("startup")
async def on_startup() -> None:
    log.info("Creating harvest runner…")
    runner = HarvestRunner(broadcast_fn=app.state.broadcaster.broadcast)
    app.state.runner = runner
    set_runner(runner)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if hasattr(app.state, "runner"):
        set_runner(None)
        log.info("Harvest runner released.")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.DASHBOARD_PORT,
        reload=False,
    )
