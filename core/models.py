from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any


def is_high(rating_value: int | None) -> bool:
    return rating_value in (4, 5)


class HarvestMode(str, enum.Enum):
    SATURATION = "saturation"  # stop at the first 4-5 star review
    CUTOFF = "cutoff"  # stop at the first review older than the cutoff


class StopReason(str, enum.Enum):
    HIGH_RATING = "high_rating"
    CUTOFF_REACHED = "cutoff_reached"
    STALLED = "stalled"
    CAP_REACHED = "cap_reached"
    ERROR = "error"
    NO_DATA = "no_data"


@dataclass
class RawItemRecord:
    """One review card as read from the page, before identity is assigned."""

    author_name: str
    rating_value: int | None
    rating_label: str
    body_text: str
    posted_at_raw: str
    has_owner_response: bool = False
    share_url: str = ""
    is_high_rating: bool = field(init=False)

    def __post_init__(self) -> None:
        self.is_high_rating = is_high(self.rating_value)


@dataclass
class HarvestedItem:
    """A deduplicated review kept by the harvest loop."""

    identity: str
    author_name: str
    rating_value: int | None
    rating_label: str
    body_text: str
    posted_at_raw: str
    has_owner_response: bool = False
    share_url: str = ""
    is_high_rating: bool = field(init=False)

    def __post_init__(self) -> None:
        self.is_high_rating = is_high(self.rating_value)

    @classmethod
    def from_record(cls, identity: str, record: RawItemRecord) -> HarvestedItem:
        return cls(
            identity=identity,
            author_name=record.author_name,
            rating_value=record.rating_value,
            rating_label=record.rating_label,
            body_text=record.body_text,
            posted_at_raw=record.posted_at_raw,
            has_owner_response=record.has_owner_response,
            share_url=record.share_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class HarvestResult:
    """Outcome of a single harvest run."""

    mode: HarvestMode
    items: list[HarvestedItem]
    errors: list[str]
    stop_reason: StopReason
    iterations: int = 0
    duration_seconds: float = 0.0

    @property
    def partial(self) -> bool:
        return self.stop_reason is StopReason.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "items": [item.to_dict() for item in self.items],
            "errors": list(self.errors),
            "stop_reason": self.stop_reason.value,
            "iterations": self.iterations,
            "duration_seconds": round(self.duration_seconds, 2),
        }
