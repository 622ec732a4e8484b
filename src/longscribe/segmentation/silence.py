"""Silence detection with an adaptive second pass and a synthetic fallback."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from longscribe.errors import DecoderError
from longscribe.models.audio import SilenceInterval
from longscribe.utils.progress import log_step, log_warning

MIN_INTERVALS = 5
SECOND_PASS_CEILING_DB = -25.0
SECOND_PASS_FLOOR_DB = -40.0
SECOND_PASS_STEP_DB = 5.0
SECOND_PASS_DURATION_FACTOR = 0.7
MERGE_GAP_SEC = 0.5
FALLBACK_SPACING_SEC = 180.0
FALLBACK_HALF_WIDTH_SEC = 0.5


class SilenceSource(Protocol):
    def detect_silence(
        self, path: Path | str, threshold_db: float, min_duration_sec: float,
    ) -> list[SilenceInterval]: ...


def merge_intervals(
    intervals: list[SilenceInterval],
    max_gap: float = MERGE_GAP_SEC,
) -> list[SilenceInterval]:
    """Sort by start and fuse intervals that overlap or sit within max_gap."""
    merged: list[SilenceInterval] = []
    for interval in sorted(intervals, key=lambda s: s.start):
        if merged and interval.start - merged[-1].end <= max_gap:
            prev = merged[-1]
            merged[-1] = SilenceInterval(prev.start, max(prev.end, interval.end))
        else:
            merged.append(interval)
    return merged


def synthetic_intervals(
    duration: float,
    spacing: float = FALLBACK_SPACING_SEC,
    half_width: float = FALLBACK_HALF_WIDTH_SEC,
) -> list[SilenceInterval]:
    """Evenly spaced pseudo-silences so the splitter always has candidates."""
    intervals = []
    point = spacing
    while point < duration:
        intervals.append(SilenceInterval(point - half_width, point + half_width))
        point += spacing
    return intervals


class SilenceDetector:
    """Finds quiet spans that make low-impact split points."""

    def __init__(self, decoder: SilenceSource):
        self.decoder = decoder

    def detect(
        self,
        path: Path | str,
        threshold_db: float,
        min_duration_sec: float,
        *,
        duration: float,
    ) -> list[SilenceInterval]:
        """Return sorted, non-overlapping silence intervals for the input.

        Steps:
        1. Detection pass at the configured threshold
        2. If too few intervals were found, a second pass with a shifted
           threshold and shorter minimum duration, merged with the first
        3. If the decoder fails, synthesize intervals every 180s
        """
        try:
            intervals = self.decoder.detect_silence(path, threshold_db, min_duration_sec)

            if len(intervals) < MIN_INTERVALS and threshold_db < SECOND_PASS_CEILING_DB:
                retry_db = max(SECOND_PASS_FLOOR_DB, threshold_db - SECOND_PASS_STEP_DB)
                retry_min = min_duration_sec * SECOND_PASS_DURATION_FACTOR
                log_step(
                    "Silence",
                    f"Only {len(intervals)} intervals at {threshold_db:g}dB, "
                    f"second pass at {retry_db:g}dB / {retry_min:.2f}s",
                )
                second = self.decoder.detect_silence(path, retry_db, retry_min)
                intervals = intervals + second

        except DecoderError as e:
            intervals = synthetic_intervals(duration)
            log_warning(
                f"Silence detection failed ({e}); using {len(intervals)} "
                f"synthetic split candidates every {FALLBACK_SPACING_SEC:.0f}s"
            )
            return intervals

        merged = merge_intervals(intervals)
        log_step("Silence", f"Detected {len(merged)} silence intervals")
        return merged
