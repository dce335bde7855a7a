from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from core.models import RawItemRecord


@dataclass
class RenderReport:
    """What a reveal produced: how many review cards are rendered in total."""

    rendered_total: int


class ReviewSource(ABC):
    """A rendered, growing review list the harvester can page through."""

    @abstractmethod
    async def reveal_more(self) -> RenderReport | None:
        """Load more reviews (scroll) and report the new rendered total."""
        ...

    @abstractmethod
    async def extract_suffix(self, from_index: int) -> Sequence[RawItemRecord]:
        """Read every rendered review at or after ``from_index``, in order."""
        ...
