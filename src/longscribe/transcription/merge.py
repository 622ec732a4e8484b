"""Merge per-chunk transcription results into one transcript."""

from __future__ import annotations

from longscribe.errors import TimelineGapError
from longscribe.models.audio import AudioSegment
from longscribe.models.transcript import ChunkResult, MergedTranscript, TranscriptSegment
from longscribe.transcription.scheduler import recover_text
from longscribe.utils.progress import log_step, log_warning

TIMELINE_TOLERANCE_SEC = 1.0


def validate_timeline(
    segments: list[AudioSegment],
    *,
    tolerance: float = TIMELINE_TOLERANCE_SEC,
) -> None:
    """Check segments are ordered, non-empty and contiguous within tolerance."""
    for i, seg in enumerate(segments):
        if seg.end_sec <= seg.start_sec:
            raise TimelineGapError.empty_segment(i, seg.start_sec, seg.end_sec)
        if i == 0:
            continue
        prev = segments[i - 1]
        if abs(seg.start_sec - prev.end_sec) > tolerance:
            raise TimelineGapError(i, prev.end_sec, seg.start_sec)


def merge_chunk_results(
    chunk_results: list[ChunkResult],
    segments: list[AudioSegment],
) -> MergedTranscript:
    """Merge chunk transcripts onto the source timeline.

    Steps:
    1. Validate segment contiguity
    2. Drop chunks with empty text
    3. Join texts with single spaces in segment order
    4. Offset every sub-segment and word by its chunk's start time
    5. Renumber sub-segment ids densely from 0
    """
    if len(chunk_results) != len(segments):
        raise ValueError(
            f"Got {len(chunk_results)} chunk results for {len(segments)} segments"
        )

    validate_timeline(segments)

    duration = segments[-1].end_sec if segments else 0.0
    raw_chunks = [result.raw for result in chunk_results]
    language = next((r.language for r in chunk_results if r.language), None)

    recovered = [recover_text(r, seg.index)[0] for r, seg in zip(chunk_results, segments)]
    kept = [
        (result, seg)
        for result, seg in zip(recovered, segments)
        if not result.is_empty
    ]

    if not kept:
        log_warning(f"All {len(chunk_results)} chunks returned empty text")
        return MergedTranscript(
            language=language,
            duration=duration,
            raw={"chunks": raw_chunks},
        )

    texts: list[str] = []
    merged_segments: list[TranscriptSegment] = []
    for result, seg in kept:
        texts.append(result.text.strip())
        for sub in result.segments:
            merged_segments.append(sub.shifted(seg.start_sec, len(merged_segments)))

    dropped = len(chunk_results) - len(kept)
    log_step(
        "Merge",
        f"Merged {len(kept)} chunk(s) → {len(merged_segments)} segments"
        + (f", {dropped} empty chunk(s) dropped" if dropped else ""),
    )

    return MergedTranscript(
        text=" ".join(texts),
        language=language,
        duration=duration,
        segments=merged_segments,
        raw={"chunks": raw_chunks},
    )
