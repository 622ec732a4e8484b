"""Split-point selection: silence first, evenly spaced hard splits as backstop."""

from __future__ import annotations

import math

from longscribe.models.audio import SilenceInterval

EARLY_SPLIT_MARGIN = 0.8
MIN_PROGRESS_FRACTION = 0.5
LONG_SILENCE_SEC = 1.0
EDGE_GUARD_SEC = 5.0
TAIL_GUARD_SEC = 10.0
MIN_POINT_SPACING_SEC = 0.1
MIN_SEGMENT_SEC = 0.1


def effective_chunk_target(
    max_chunk_sec: float,
    duration: float,
    size_bytes: int,
    max_bytes: int,
) -> float:
    """Tighten the duration target when the byte budget is the binding limit."""
    if duration > 0 and size_bytes > max_bytes:
        return min(max_chunk_sec, duration * max_bytes / size_bytes)
    return max_chunk_sec


def candidate_point(interval: SilenceInterval) -> float:
    """Middle of a long silence, otherwise its end so trailing speech is kept."""
    if interval.duration >= LONG_SILENCE_SEC:
        return interval.midpoint
    return interval.end


def even_points(start: float, end: float, target: float) -> list[float]:
    """Interior points dividing [start, end] into ceil(span/target) equal parts."""
    span = end - start
    if span <= target:
        return []
    count = math.ceil(span / target)
    step = span / count
    return [start + k * step for k in range(1, count)]


def choose_split_points(
    silences: list[SilenceInterval],
    total_duration: float,
    target: float,
) -> list[float]:
    """Pick chunk boundaries for a recording of total_duration seconds.

    Walks the silences keeping track of the last split. A silence becomes a
    split point once the running chunk passes the early-split margin, or when
    waiting for the next boundary would overflow the target. Spans with no
    usable silence, and the tail, are divided by evenly spaced hard splits.
    """
    if total_duration <= target:
        return []

    candidates = [
        (interval, candidate_point(interval))
        for interval in sorted(silences, key=lambda s: s.start)
    ]
    candidates = [
        (interval, point)
        for interval, point in candidates
        if EDGE_GUARD_SEC <= point <= total_duration - EDGE_GUARD_SEC
    ]

    points: list[float] = []
    last = 0.0

    for i, (interval, point) in enumerate(candidates):
        if point <= last:
            continue

        next_boundary = candidates[i + 1][1] if i + 1 < len(candidates) else total_duration
        past_margin = interval.start - last > EARLY_SPLIT_MARGIN * target
        would_overflow = (
            next_boundary - last > target
            and point - last >= MIN_PROGRESS_FRACTION * target
        )
        if not (past_margin or would_overflow):
            continue

        points.extend(even_points(last, point, target))
        points.append(point)
        last = point

    tail = [
        p for p in even_points(last, total_duration, target)
        if p <= total_duration - TAIL_GUARD_SEC
    ]
    points.extend(tail)

    return _clean(points, total_duration)


def _clean(points: list[float], total_duration: float) -> list[float]:
    cleaned: list[float] = []
    for point in sorted(points):
        if point < EDGE_GUARD_SEC or point > total_duration - EDGE_GUARD_SEC:
            continue
        if cleaned and point - cleaned[-1] < MIN_POINT_SPACING_SEC:
            continue
        cleaned.append(point)
    return cleaned


def segment_bounds(split_points: list[float], total_duration: float) -> list[tuple[float, float]]:
    """Turn split points into contiguous [start, end) ranges.

    A sliver shorter than MIN_SEGMENT_SEC is absorbed by the range after it.
    """
    bounds: list[tuple[float, float]] = []
    start = 0.0
    for end in [*split_points, total_duration]:
        if end - start < MIN_SEGMENT_SEC:
            continue
        bounds.append((start, end))
        start = end
    if not bounds:
        return [(0.0, total_duration)]
    if start < total_duration:
        bounds[-1] = (bounds[-1][0], total_duration)
    return bounds
