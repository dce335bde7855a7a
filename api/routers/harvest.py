from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from harvesting.harvester import InvalidCutoffError
from harvesting.runner import ReviewCheckError

router = APIRouter(prefix="/api/harvest", tags=["harvest"])

# The runner reference is injected by main.py at startup
_runner = None


def set_runner(runner) -> None:
    global _runner
    _runner = runner


def _require_runner():
    if _runner is None:
        raise HTTPException(503, "Harvest runner not initialized")
    return _runner


class LowestRequest(BaseModel):
    url: str


class NewestRequest(BaseModel):
    url: str
    since: str


@router.post("/lowest")
async def harvest_lowest(body: LowestRequest):
    runner = _require_runner()
    result = await runner.harvest_lowest(body.url)
    return result.to_dict()


@router.post("/newest")
async def harvest_newest(body: NewestRequest):
    runner = _require_runner()
    try:
        result = await runner.harvest_since(body.url, body.since)
    except InvalidCutoffError as e:
        raise HTTPException(422, str(e)) from e
    return result.to_dict()


@router.get("/deleted")
async def review_deleted(url: str = Query(..., min_length=1)):
    runner = _require_runner()
    try:
        deleted = await runner.check_deleted(url)
    except ReviewCheckError as e:
        raise HTTPException(502, str(e)) from e
    return {"url": url, "deleted": deleted}


@router.get("/status")
async def runner_status():
    if _runner is None:
        return {"ready": False, "busy": False}
    return {"ready": True, "busy": _runner.busy}
