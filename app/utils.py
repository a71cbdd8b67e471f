"""Utility helpers for ranking recommendation candidates."""

from __future__ import annotations

from typing import Collection, Hashable, Iterable, TypeVar

from .models import ContentId, ContentSummary

T = TypeVar("T", bound=Hashable)


def first_distinct(values: Iterable[T], limit: int | None = None) -> list[T]:
    """Return distinct values in order of first appearance, optionally capped."""

    seen: dict[T, None] = {}
    for value in values:
        if limit is not None and len(seen) >= limit:
            break
        seen.setdefault(value, None)
    return list(seen)


def deduplicate(items: Iterable[ContentSummary]) -> list[ContentSummary]:
    """Drop repeated content ids, keeping the first occurrence."""

    seen: set[ContentId] = set()
    unique: list[ContentSummary] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def rank_bucket(
    candidates: Iterable[ContentSummary],
    *,
    exclude: Collection[ContentId],
    limit: int,
) -> tuple[ContentSummary, ...]:
    """Dedupe, filter, sort by popularity and truncate one candidate stream."""

    unique = deduplicate(candidates)
    filtered = [item for item in unique if item.id not in exclude]
    # sorted() is stable, so equal popularity keeps input order.
    ranked = sorted(filtered, key=lambda item: item.popularity, reverse=True)
    return tuple(ranked[: max(limit, 0)])
