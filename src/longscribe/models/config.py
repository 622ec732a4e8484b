"""Configuration models for segmentation, scheduling and transcription."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

LONG_AUDIO_SEC = 3600.0
VERY_LONG_AUDIO_SEC = 7200.0

# Knobs that change where a recording is split. Anything else (logging,
# provider, scheduling) must not influence the segmentation fingerprint.
SEGMENTATION_FIELDS = frozenset({
    "max_upload_size_mb",
    "max_chunk_duration_sec",
    "silence_threshold_db",
    "min_silence_ms",
    "hard_split_window_sec",
    "target_sample_rate_hz",
    "target_channels",
    "preserve_intermediates",
    "enable_preprocessing",
})


class SegmentOptions(BaseModel):
    """Effective configuration for one segmentation run."""

    model_config = ConfigDict(frozen=True)

    max_upload_size_mb: float = Field(default=24.5, gt=0.0, le=2048.0)
    max_chunk_duration_sec: float = Field(default=85.0, ge=5.0, le=86400.0)
    silence_threshold_db: float = Field(default=-35.0, ge=-90.0, le=0.0)
    min_silence_ms: int = Field(default=400, ge=50, le=5000)
    hard_split_window_sec: float = Field(default=30.0, ge=5.0, le=86400.0)
    target_sample_rate_hz: int = Field(default=16000, ge=8000, le=48000)
    target_channels: int = Field(default=1, ge=1, le=2)
    preserve_intermediates: bool = False
    enable_preprocessing: bool = True

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_size_mb * 1024 * 1024)

    def fingerprint_fields(self) -> dict:
        return self.model_dump(include=set(SEGMENTATION_FIELDS))

    def adapted_to(self, duration_sec: float) -> SegmentOptions:
        """Widen chunking for recordings over an hour to cut the chunk count."""
        if duration_sec <= LONG_AUDIO_SEC:
            return self
        window = 150.0 if duration_sec > VERY_LONG_AUDIO_SEC else 120.0
        return self.model_copy(update={
            "max_chunk_duration_sec": max(self.max_chunk_duration_sec, 150.0),
            "hard_split_window_sec": max(self.hard_split_window_sec, window),
            "silence_threshold_db": max(self.silence_threshold_db, -30.0),
            "min_silence_ms": min(self.min_silence_ms, 300),
        })


class SchedulerConfig(BaseModel):
    """Retry, backoff and rate-limit settings for the batch scheduler."""

    attempt_retries: int = Field(default=3, ge=1, le=5)
    backoff_initial_sec: float = Field(default=0.5, ge=0.0, le=10.0)
    backoff_max_sec: float = Field(default=8.0, ge=0.0, le=60.0)
    repair_delay_sec: float = Field(default=1.0, ge=0.0, le=30.0)
    min_batch_delay_sec: float = Field(default=1.0, ge=0.0, le=60.0)
    per_item_delay_sec: float = Field(default=0.2, ge=0.0, le=5.0)


class TranscriptionConfig(BaseModel):
    """Configuration for the local faster-whisper provider."""

    model: str = "large-v3-turbo"
    device: str = "cpu"
    language: str | None = None
    beam_size: int = Field(default=5, ge=1, le=10)
    word_timestamps: bool = True


class DiarizationConfig(BaseModel):
    """Configuration for the optional speaker diarization step."""

    enabled: bool = False
    num_speakers: int | None = Field(default=None, ge=1, le=20)
    merge_threshold_sec: float | None = Field(default=None, ge=0.0, le=10.0)


class PipelineConfig(BaseModel):
    """Top-level configuration for one transcription run."""

    segment: SegmentOptions = Field(default_factory=SegmentOptions)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    diarization: DiarizationConfig = Field(default_factory=DiarizationConfig)
    enable_chunking: bool = True
    adaptive_options: bool = True
    pipeline_timeout_sec: float | None = Field(default=None, gt=0.0)
    ffmpeg_path: str | None = None
    temp_dir: str | None = None
