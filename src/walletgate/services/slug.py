"""Username slug normalization and collision handling."""

from __future__ import annotations

import re
import time

from sqlalchemy import select
from sqlalchemy.orm import Session

from walletgate.models import User

SLUG_MAX_LENGTH = 32
_SLUG_PATTERN = re.compile(r"^[a-z0-9_.-]{1,32}$")


def normalize_slug(value: str) -> str:
    """Lowercase ``value`` and reduce it to ``[a-z0-9_.-]``, at most 32 characters."""
    slug = value.lower()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9_.-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug[:SLUG_MAX_LENGTH] or "user"


def is_valid_slug(slug: str) -> bool:
    return bool(_SLUG_PATTERN.match(slug))


def is_slug_taken(db: Session, slug: str) -> bool:
    return (
        db.execute(select(User.id).where(User.username_slug == slug).limit(1)).first()
        is not None
    )


def generate_unique_slug(db: Session, base: str) -> str:
    """Return ``base`` normalized, suffixed with ``-N`` if it is already taken.

    ``N`` is one more than the highest numeric suffix currently in use.
    """
    normalized = normalize_slug(base)
    if not is_slug_taken(db, normalized):
        return normalized

    existing = db.execute(
        select(User.username_slug).where(
            User.username_slug.startswith(normalized, autoescape=True)
        )
    ).scalars()
    suffix_pattern = re.compile(rf"^{re.escape(normalized)}-(\d+)$")
    highest = 0
    for slug in existing:
        match = suffix_pattern.match(slug)
        if match:
            highest = max(highest, int(match.group(1)))

    candidate = f"{normalized}-{highest + 1}"
    if is_slug_taken(db, candidate):
        # Lost a race with a concurrent insert.
        return f"{normalized}-{int(time.time() * 1000):x}"
    return candidate
