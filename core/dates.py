"""Relative review timestamps ("3 days ago", "a year ago") and their ordering."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone

from dateutil.relativedelta import relativedelta

log = logging.getLogger(__name__)

_RELATIVE_RE = re.compile(
    r"^(a|an|\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago$"
)

# relativedelta clamps month/year arithmetic to the last valid day
# (March 31 minus one month is February 28/29).
_UNIT_KWARG = {
    "second": "seconds",
    "minute": "minutes",
    "hour": "hours",
    "day": "days",
    "week": "weeks",
    "month": "months",
    "year": "years",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_relative_time(
    text: str | None, now: datetime | None = None
) -> datetime | None:
    """Turn "2 weeks ago" / "an hour ago" into an absolute instant.

    Returns ``None`` for anything outside the ``<n|a|an> <unit>[s] ago``
    grammar; callers treat that as "undecidable", never as an error.
    """
    if not text:
        return None

    m = _RELATIVE_RE.match(text.strip().lower())
    if not m:
        return None

    amount_str, unit = m.groups()
    amount = 1 if amount_str in ("a", "an") else int(amount_str)
    now = now or utcnow()
    return now - relativedelta(**{_UNIT_KWARG[unit]: amount})


def _coerce(value: datetime | str | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def is_at_or_after(
    candidate: datetime | str | None, reference: datetime | str | None
) -> bool | None:
    """True when ``candidate`` is as new as or newer than ``reference``.

    ``None`` means the answer cannot be decided: a missing instant, an
    unparseable ISO string, or naive/aware values that cannot be ordered.
    """
    a = _coerce(candidate)
    b = _coerce(reference)
    if a is None or b is None:
        return None
    try:
        return a >= b
    except TypeError:
        log.debug("Cannot order %r against %r", candidate, reference)
        return None
