from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.models import RawItemRecord
from harvesting.base import RenderReport, ReviewSource

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


def rec(
    author: str,
    body: str = "",
    rating: int = 1,
    posted: str = "1 day ago",
    share_url: str = "",
) -> RawItemRecord:
    return RawItemRecord(
        author_name=author,
        rating_value=rating,
        rating_label=f"{rating} stars",
        body_text=body or f"review by {author}",
        posted_at_raw=posted,
        share_url=share_url,
    )


class FakeReviewSource(ReviewSource):
    """Renders one batch of cards per reveal; empty reveals once exhausted."""

    def __init__(self, batches, fail_on_reveal: int | None = None) -> None:
        self._batches = list(batches)
        self._fail_on = fail_on_reveal
        self.rendered: list[RawItemRecord] = []
        self.reveal_calls = 0
        self.extract_calls: list[int] = []
        self.reported_totals: list[int] = []

    async def reveal_more(self) -> RenderReport:
        self.reveal_calls += 1
        if self._fail_on is not None and self.reveal_calls == self._fail_on:
            raise RuntimeError("scroll container vanished")
        if self._batches:
            self.rendered.extend(self._batches.pop(0))
        self.reported_totals.append(len(self.rendered))
        return RenderReport(rendered_total=len(self.rendered))

    async def extract_suffix(self, from_index: int):
        self.extract_calls.append(from_index)
        return list(self.rendered[from_index:])


@pytest.fixture
def frozen_clock():
    return lambda: NOW
