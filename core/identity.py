from __future__ import annotations

NO_REVIEW_TEXT = "No review text found"
BODY_PREFIX_LENGTH = 50


def derive_key(author_name: str, body_text: str) -> str:
    """Dedup key for a review: author plus the opening of its text.

    Independent of the card's index in the list, which shifts as more
    reviews render. Distinct reviews by the same author with identical
    openings collide.
    """
    body = body_text or NO_REVIEW_TEXT
    return f"{author_name}_{body[:BODY_PREFIX_LENGTH]}"
