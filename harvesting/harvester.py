"""Incremental harvest over a virtualised review list.

Each iteration reveals more reviews, reads only the cards that were not
inspected before, classifies them and decides whether to keep scrolling.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from config.settings import settings
from core.dates import is_at_or_after, parse_relative_time, utcnow
from core.identity import derive_key
from core.models import (
    HarvestedItem,
    HarvestMode,
    HarvestResult,
    RawItemRecord,
    StopReason,
)
from harvesting.base import ReviewSource

log = logging.getLogger(__name__)


class InvalidCutoffError(ValueError):
    """The cutoff given for a cutoff harvest is empty or not a relative time."""


@dataclass
class HarvestState:
    results: dict[str, HarvestedItem] = field(default_factory=dict)
    processed_count: int = 0
    consecutive_no_new_render_count: int = 0
    running: bool = True
    stop_reason: StopReason | None = None
    iterations: int = 0

    def stop(self, reason: StopReason) -> None:
        # First reason wins; later checks in the same iteration are moot.
        if self.running:
            self.running = False
            self.stop_reason = reason


class ReviewHarvester:
    """Drives a :class:`ReviewSource` until saturation, cutoff, stall or cap.

    Without a cutoff the list is assumed sorted lowest rating first and the
    first 4-5 star review ends the harvest. With a cutoff the list is assumed
    newest first and the first review older than the cutoff ends it; 4-5 star
    reviews newer than the cutoff are skipped.
    """

    def __init__(
        self,
        source: ReviewSource,
        *,
        pause_seconds: float | None = None,
        max_idle_rounds: int | None = None,
        max_items: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._source = source
        self._pause = (
            settings.HARVEST_PAUSE_SECONDS if pause_seconds is None else pause_seconds
        )
        self._max_idle_rounds = (
            settings.HARVEST_MAX_IDLE_ROUNDS if max_idle_rounds is None else max_idle_rounds
        )
        self._max_items = settings.HARVEST_MAX_ITEMS if max_items is None else max_items
        self._clock = clock

    async def harvest(self, cutoff: str | None = None) -> HarvestResult:
        mode = HarvestMode.SATURATION if cutoff is None else HarvestMode.CUTOFF
        now = self._clock()

        cutoff_at: datetime | None = None
        if mode is HarvestMode.CUTOFF:
            cutoff_at = parse_relative_time(cutoff, now)
            if cutoff_at is None:
                raise InvalidCutoffError(
                    f"Cutoff must look like '3 days ago' or 'a year ago', got {cutoff!r}"
                )
            log.info("Cutoff harvest: keeping reviews posted since %s (%s)", cutoff, cutoff_at.isoformat())

        state = HarvestState()
        errors: list[str] = []
        start = time.monotonic()

        while state.running:
            state.iterations += 1
            try:
                newly_rendered, records = await self._reveal_and_extract(state)
            except Exception as e:
                msg = f"iteration {state.iterations}: {e}"
                log.warning("Harvest stopped early, keeping %d reviews: %s", len(state.results), msg)
                errors.append(msg)
                state.stop(StopReason.ERROR)
                break

            if newly_rendered is None:
                log.info("Review source returned no render report, stopping")
                state.stop(StopReason.NO_DATA)
                break

            added = self._classify(records, state, mode, cutoff_at, now)

            if newly_rendered == 0:
                state.consecutive_no_new_render_count += 1
                if state.consecutive_no_new_render_count >= self._max_idle_rounds:
                    log.info("Stopping: no new reviews rendered for %d rounds", state.consecutive_no_new_render_count)
                    state.stop(StopReason.STALLED)
            else:
                state.consecutive_no_new_render_count = 0

            log.info(
                "Iteration %d: %d newly rendered, %d added, %d unique total",
                state.iterations,
                newly_rendered,
                added,
                len(state.results),
            )

            if state.running:
                await asyncio.sleep(self._pause)

        items = list(state.results.values())
        log.info(
            "Harvest finished (%s): %d reviews in %d iterations, reason=%s",
            mode.value,
            len(items),
            state.iterations,
            state.stop_reason.value if state.stop_reason else None,
        )
        return HarvestResult(
            mode=mode,
            items=items,
            errors=errors,
            stop_reason=state.stop_reason or StopReason.NO_DATA,
            iterations=state.iterations,
            duration_seconds=time.monotonic() - start,
        )

    async def _reveal_and_extract(
        self, state: HarvestState
    ) -> tuple[int | None, Sequence[RawItemRecord]]:
        report = await self._source.reveal_more()
        if report is None:
            return None, []

        total = report.rendered_total
        newly_rendered = total - state.processed_count
        if newly_rendered < 0:
            log.warning(
                "Rendered total went down (%d < %d), treating as no new reviews",
                total,
                state.processed_count,
            )
            return 0, []
        if newly_rendered == 0:
            return 0, []

        # Only the unseen suffix; re-reading earlier cards would repeat the
        # per-card clicks the source performs.
        records = await self._source.extract_suffix(state.processed_count)
        state.processed_count = total
        return newly_rendered, records

    def _classify(
        self,
        records: Sequence[RawItemRecord],
        state: HarvestState,
        mode: HarvestMode,
        cutoff_at: datetime | None,
        now: datetime,
    ) -> int:
        added = 0
        for record in records:
            if not state.running:
                break
            identity = derive_key(record.author_name, record.body_text)

            if mode is HarvestMode.SATURATION:
                if record.is_high_rating:
                    log.info("Stopping: reached a %s review (%s)", record.rating_label, identity)
                    state.stop(StopReason.HIGH_RATING)
                    break
                added += self._insert(state, identity, record)
                continue

            posted_at = parse_relative_time(record.posted_at_raw, now)
            in_range = is_at_or_after(posted_at, cutoff_at)
            if in_range is None:
                log.debug("Skipping %s: undecidable date %r", identity, record.posted_at_raw)
                continue
            if not in_range:
                log.info("Stopping: %s posted %s is older than the cutoff", identity, record.posted_at_raw)
                state.stop(StopReason.CUTOFF_REACHED)
                break
            if record.is_high_rating:
                log.debug("Skipping high rating %s", identity)
                continue
            added += self._insert(state, identity, record)
        return added

    def _insert(self, state: HarvestState, identity: str, record: RawItemRecord) -> int:
        if identity in state.results:
            return 0
        state.results[identity] = HarvestedItem.from_record(identity, record)
        log.debug("New review added: %s", identity)
        if len(state.results) > self._max_items:
            log.info("Stopping: maximum of %d reviews exceeded", self._max_items)
            state.stop(StopReason.CAP_REACHED)
        return 1
