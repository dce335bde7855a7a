from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from playwright.async_api import Page

from core.dates import parse_relative_time
from core.models import HarvestMode, HarvestResult, StopReason
from harvesting.base import ReviewSource
from harvesting.gmaps import (
    BrowserSession,
    GoogleMapsReviewSource,
    SortOrder,
    is_review_deleted,
    open_listing,
)
from harvesting.harvester import InvalidCutoffError, ReviewHarvester

log = logging.getLogger(__name__)


class ReviewCheckError(RuntimeError):
    """The review page could not be loaded or read."""


BroadcastFn = Callable[[dict[str, Any]], Awaitable[None]]


class HarvestRunner:
    """Runs one full listing harvest at a time and reports its outcome."""

    def __init__(
        self,
        broadcast_fn: BroadcastFn | None = None,
        session_factory: Callable[[], Any] = BrowserSession,
        source_factory: Callable[[Page], ReviewSource] = GoogleMapsReviewSource,
        harvester_kwargs: dict[str, Any] | None = None,
    ) -> None:
        self._broadcast = broadcast_fn
        self._session_factory = session_factory
        self._source_factory = source_factory
        self._harvester_kwargs = harvester_kwargs or {}
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def harvest_lowest(self, url: str) -> HarvestResult:
        """Lowest-rated reviews first, up to the first 4-5 star one."""
        return await self._run(url, SortOrder.LOWEST_RATING, None)

    async def harvest_since(self, url: str, since: str) -> HarvestResult:
        """Newest reviews first, down to the first one older than ``since``."""
        # Validate before a browser is launched.
        if parse_relative_time(since) is None:
            raise InvalidCutoffError(
                f"Cutoff must look like '3 days ago' or 'a year ago', got {since!r}"
            )
        return await self._run(url, SortOrder.NEWEST, since)

    async def check_deleted(self, url: str) -> bool:
        async with self._lock:
            try:
                async with self._session_factory() as page:
                    deleted = await is_review_deleted(page, url)
            except Exception as e:
                log.warning("Deleted-review check failed for %s: %s", url, e)
                raise ReviewCheckError(f"{url}: {e}") from e
        log.info("Review %s deleted: %s", url, deleted)
        return deleted

    async def _run(self, url: str, order: SortOrder, since: str | None) -> HarvestResult:
        mode = HarvestMode.SATURATION if since is None else HarvestMode.CUTOFF
        log.info("Starting %s harvest: %s", mode.value, url)

        async with self._lock:
            try:
                async with self._session_factory() as page:
                    await open_listing(page, url, order)
                    harvester = ReviewHarvester(
                        self._source_factory(page), **self._harvester_kwargs
                    )
                    result = await harvester.harvest(cutoff=since)
            except InvalidCutoffError:
                raise
            except Exception as e:
                msg = f"{url}: {e}"
                log.warning("Harvest failed: %s", msg)
                result = HarvestResult(
                    mode=mode, items=[], errors=[msg], stop_reason=StopReason.ERROR
                )

        log.info(
            "Finished %s harvest | %d reviews | %.1fs | %d errors | %s",
            mode.value,
            len(result.items),
            result.duration_seconds,
            len(result.errors),
            result.stop_reason.value,
        )

        if self._broadcast:
            await self._broadcast(
                {
                    "event": "harvest_complete",
                    "mode": mode.value,
                    "url": url,
                    "items": len(result.items),
                    "errors": len(result.errors),
                    "stop_reason": result.stop_reason.value,
                }
            )

        return result
