"""Service for detecting overlapping reservations on the same resource."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from fleet.domain.models import (
    ConflictQuery,
    ConflictResult,
    Interval,
    IntervalStatus,
    InvalidInterval,
)


def overlaps(
    start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime
) -> bool:
    """Return True if the half-open spans ``[start_a, end_a)`` and ``[start_b, end_b)`` overlap.

    Exact boundary touches (end == start) are NOT considered overlaps.
    """
    return start_a < end_b and start_b < end_a


def check_availability(query: ConflictQuery, existing: Iterable[Interval]) -> ConflictResult:
    """Return whether *query* is free of active intervals on its resource.

    *existing* is a snapshot supplied by the caller; it may be unsorted and may
    hold intervals of other resources. Conflicts come back ordered by start.

    The result only describes the snapshot. Callers that persist the queried
    span afterwards must serialise check and write themselves.

    Raises InvalidInterval if the query does not satisfy ``start < end``.
    """
    if query.end <= query.start:
        raise InvalidInterval(
            f"end ({query.end.isoformat()}) must be after start ({query.start.isoformat()})"
        )

    # Exclusion happens before the overlap test so an edited interval never
    # collides with its own previous span.
    candidates = [
        interval
        for interval in existing
        if interval.resource_id == query.resource_id
        and interval.status == IntervalStatus.ACTIVE
        and interval.id != query.exclude_interval_id
    ]
    conflicts = sorted(
        (
            interval
            for interval in candidates
            if overlaps(query.start, query.end, interval.start, interval.end)
        ),
        key=lambda interval: interval.start,
    )
    return ConflictResult(available=not conflicts, conflicts=conflicts)
