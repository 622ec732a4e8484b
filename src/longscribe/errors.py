"""Exception hierarchy for the segmentation and transcription pipeline."""

from __future__ import annotations


class LongscribeError(Exception):
    """Base class for all pipeline errors."""


class DecoderError(LongscribeError):
    """The external audio decoder failed or produced unusable output."""


class SegmentationError(LongscribeError):
    """A segmentation run could not produce its segments."""

    def __init__(
        self,
        message: str,
        *,
        segment_index: int | None = None,
        start_sec: float | None = None,
        end_sec: float | None = None,
    ):
        self.segment_index = segment_index
        self.start_sec = start_sec
        self.end_sec = end_sec
        super().__init__(message)


class TimelineGapError(LongscribeError):
    """Consecutive segment boundaries do not line up."""

    def __init__(
        self,
        segment_index: int,
        previous_end: float,
        start: float,
        message: str | None = None,
    ):
        self.segment_index = segment_index
        self.previous_end = previous_end
        self.start = start
        super().__init__(message or (
            f"Timeline gap detected before segment {segment_index}: "
            f"previous segment ends at {previous_end:.2f}s, "
            f"next starts at {start:.2f}s"
        ))

    @classmethod
    def empty_segment(cls, segment_index: int, start: float, end: float) -> "TimelineGapError":
        return cls(
            segment_index, start, start,
            f"Segment {segment_index} has no length: "
            f"starts at {start:.2f}s, ends at {end:.2f}s",
        )


class TranscriptionError(LongscribeError):
    """A transcription provider call failed."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        segment_index: int | None = None,
    ):
        self.status = status
        self.segment_index = segment_index
        super().__init__(message)


class TransientTranscriptionError(TranscriptionError):
    """Network reset, timeout or HTTP 5xx. Worth retrying."""


class PermanentTranscriptionError(TranscriptionError):
    """HTTP 4xx such as a bad key or a rejected payload. Never retried."""


class ChunkRetryExhausted(TranscriptionError):
    """A segment failed its concurrent attempt and its sequential retry."""

    def __init__(
        self,
        segment_index: int,
        start_sec: float,
        end_sec: float,
        cause: BaseException,
    ):
        self.start_sec = start_sec
        self.end_sec = end_sec
        self.cause = cause
        super().__init__(
            f"Segment {segment_index} ({start_sec:.1f}s-{end_sec:.1f}s) failed "
            f"after retry: {cause}",
            status=getattr(cause, "status", None),
            segment_index=segment_index,
        )


class PipelineTimeout(LongscribeError):
    """The overall pipeline deadline passed between batches."""
