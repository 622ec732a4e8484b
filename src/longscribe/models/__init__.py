"""Pydantic data models for longscribe."""

from longscribe.models.audio import (
    AudioMetadata,
    AudioSegment,
    AudioSource,
    FileRefPayload,
    OwnedPayload,
    SilenceInterval,
)
from longscribe.models.config import (
    DiarizationConfig,
    PipelineConfig,
    SchedulerConfig,
    SegmentOptions,
    TranscriptionConfig,
)
from longscribe.models.transcript import (
    ChunkResult,
    MergedTranscript,
    Speaker,
    SpeakerTurn,
    TranscriptSegment,
    Word,
)

__all__ = [
    "AudioMetadata",
    "AudioSegment",
    "AudioSource",
    "FileRefPayload",
    "OwnedPayload",
    "SilenceInterval",
    "DiarizationConfig",
    "PipelineConfig",
    "SchedulerConfig",
    "SegmentOptions",
    "TranscriptionConfig",
    "ChunkResult",
    "MergedTranscript",
    "Speaker",
    "SpeakerTurn",
    "TranscriptSegment",
    "Word",
]
