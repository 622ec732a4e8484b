"""End-to-end runner: segment, transcribe in batches, merge, diarize."""

from __future__ import annotations

import tempfile
import time
from pathlib import Path
from typing import Any, Callable

from longscribe.errors import DecoderError, PermanentTranscriptionError
from longscribe.models.audio import AudioSegment, AudioSource
from longscribe.models.config import PipelineConfig, SegmentOptions
from longscribe.models.transcript import MergedTranscript
from longscribe.segmentation.cache import SegmentationCache
from longscribe.segmentation.segmenter import (
    Decoder,
    Segmenter,
    estimate_duration,
    source_payload,
    source_size,
)
from longscribe.transcription.diarize import DiarizationEnhancer, DiarizeFunc
from longscribe.transcription.merge import merge_chunk_results, validate_timeline
from longscribe.transcription.scheduler import BatchScheduler, TranscribeFunc
from longscribe.utils.ffmpeg import FFmpegDecoder
from longscribe.utils.io import read_yaml
from longscribe.utils.progress import (
    format_seconds,
    log,
    log_step,
    log_success,
    log_warning,
    show_stage_summary,
)

# Provider statuses meaning "this upload is too large or malformed".
PAYLOAD_REJECTED_STATUSES = frozenset({400, 413})


def load_config(
    path: Path | str | None = None,
    overrides: dict[str, Any] | None = None,
) -> PipelineConfig:
    """Load a PipelineConfig from YAML, then apply dotted-key overrides.

    Overrides whose value is None are ignored, so CLI flags that were not
    given leave the file's values alone.
    """
    data = read_yaml(path) if path else {}
    for dotted, value in (overrides or {}).items():
        if value is None:
            continue
        *parents, leaf = dotted.split(".")
        target = data
        for name in parents:
            target = target.setdefault(name, {})
        target[leaf] = value
    return PipelineConfig(**data)


def probe_duration(source: AudioSource, decoder: Decoder) -> float:
    """Best-known duration of the input without splitting it.

    Buffers are written to a scratch file so the decoder can read them;
    the size estimate is only used when nothing can decode the input.
    """
    if decoder.probe():
        try:
            if isinstance(source, (bytes, bytearray)):
                with tempfile.TemporaryDirectory(prefix="longscribe-probe-") as tmp:
                    path = Path(tmp) / "input.m4a"
                    path.write_bytes(bytes(source))
                    duration = decoder.metadata(path).duration
            else:
                duration = decoder.metadata(source).duration
        except DecoderError as e:
            log_warning(f"Could not read duration, estimating from size: {e}")
        else:
            if duration > 0:
                return duration
    return estimate_duration(source_size(source))


def is_payload_rejection(error: PermanentTranscriptionError) -> bool:
    return error.status in PAYLOAD_REJECTED_STATUSES


def resolve_segment_options(
    config: PipelineConfig, source: AudioSource, decoder: Decoder,
) -> SegmentOptions:
    """Segmentation options for this input, widened for long recordings."""
    options = config.segment
    if not config.adaptive_options:
        return options
    duration = probe_duration(source, decoder)
    adapted = options.adapted_to(duration)
    if adapted is not options:
        log_step(
            "Segment",
            f"Long recording ({format_seconds(duration)}), using "
            f"{adapted.max_chunk_duration_sec:.0f}s chunks and "
            f"{adapted.silence_threshold_db:.0f}dB threshold",
        )
    return adapted


class TranscriptionPipeline:
    """Runs one recording through segmentation and chunked transcription.

    Collaborators are injected: the provider as a TranscribeFunc, and
    optionally the decoder, cache, scheduler and diarizer.
    """

    def __init__(
        self,
        transcribe_one: TranscribeFunc,
        *,
        config: PipelineConfig | None = None,
        decoder: Decoder | None = None,
        cache: SegmentationCache | None = None,
        scheduler: BatchScheduler | None = None,
        diarizer: DiarizeFunc | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or PipelineConfig()
        self.transcribe_one = transcribe_one
        self.decoder = decoder or FFmpegDecoder(self.config.ffmpeg_path)
        self.cache = cache
        self.scheduler = scheduler or BatchScheduler(self.config.scheduler, clock=clock)
        self.diarizer = diarizer
        self.clock = clock
        self.segmenter = Segmenter(
            self.decoder, cache=cache, temp_root=self.config.temp_dir,
        )

    def resolve_options(self, source: AudioSource) -> SegmentOptions:
        return resolve_segment_options(self.config, source, self.decoder)

    def run(self, audio: AudioSource) -> MergedTranscript:
        """Transcribe one recording and return the merged transcript."""
        started = self.clock()
        timeout = self.config.pipeline_timeout_sec
        deadline = started + timeout if timeout else None

        log(f"[bold]longscribe[/bold]: {_describe_source(audio)}")

        if self.config.enable_chunking:
            transcript, segment_count = self._run_chunked(audio, deadline)
        else:
            transcript, segment_count = self._run_direct(audio, deadline)

        if self.diarizer is None and self.config.diarization.enabled:
            self.diarizer = self._build_diarizer()
        if self.diarizer is not None:
            enhancer = DiarizationEnhancer(
                self.diarizer,
                merge_threshold_sec=self.config.diarization.merge_threshold_sec,
            )
            transcript = enhancer.enhance(transcript, audio)

        stats = self.scheduler.stats
        details = {
            "Segments": segment_count,
            "Batches": stats.batches,
            "Retried": stats.repaired,
            "Recovered": stats.recovered,
            "Duration": format_seconds(transcript.duration),
            "Words": transcript.word_count,
        }
        if transcript.speakers:
            details["Speakers"] = len(transcript.speakers)
        if self.cache is not None:
            details["Cache"] = "{hits} hit(s), {misses} miss(es)".format(**self.cache.stats)
        show_stage_summary("Transcription", self.clock() - started, details)

        if transcript.is_empty:
            log_warning("Transcript is empty")
        else:
            log_success(f"Transcribed {transcript.word_count} words")
        return transcript

    def _run_direct(
        self, audio: AudioSource, deadline: float | None,
    ) -> tuple[MergedTranscript, int]:
        log_step("Transcribe", "Chunking disabled, sending the whole recording")
        segment = AudioSegment(
            index=0,
            start_sec=0.0,
            end_sec=probe_duration(audio, self.decoder),
            size_bytes=source_size(audio),
            payload=source_payload(audio),
        )
        try:
            results = self.scheduler.run([segment], self.transcribe_one, deadline=deadline)
        except PermanentTranscriptionError as e:
            if is_payload_rejection(e):
                raise PermanentTranscriptionError(
                    f"Provider rejected the recording ({e}). The file is probably "
                    "too large for a single upload; enable chunking to split it.",
                    status=e.status,
                    segment_index=0,
                ) from e
            raise
        return merge_chunk_results(results, [segment]), 1

    def _run_chunked(
        self, audio: AudioSource, deadline: float | None,
    ) -> tuple[MergedTranscript, int]:
        options = self.resolve_options(audio)
        segments = self.segmenter.segment(audio, options)
        try:
            try:
                return self._transcribe_segments(segments, deadline), len(segments)
            except PermanentTranscriptionError as e:
                if len(segments) != 1 or not is_payload_rejection(e):
                    raise
                retry_error = e

            options = options.model_copy(update={
                "max_upload_size_mb": options.max_upload_size_mb / 2,
            })
            log_warning(
                f"Provider rejected the unsplit recording ({retry_error}); "
                f"re-segmenting with a {options.max_upload_size_mb:.1f}MB budget"
            )
            for seg in segments:
                seg.release()
            segments = self.segmenter.segment(audio, options)
            if len(segments) == 1:
                raise retry_error
            return self._transcribe_segments(segments, deadline), len(segments)
        finally:
            for seg in segments:
                seg.release()

    def _transcribe_segments(
        self, segments: list[AudioSegment], deadline: float | None,
    ) -> MergedTranscript:
        validate_timeline(segments)
        results = self.scheduler.run(segments, self.transcribe_one, deadline=deadline)
        return merge_chunk_results(results, segments)

    def _build_diarizer(self) -> DiarizeFunc | None:
        from longscribe.transcription.diarize import pyannote_diarizer

        try:
            return pyannote_diarizer(self.config.diarization.num_speakers)
        except (ImportError, RuntimeError) as e:
            log_warning(f"Diarization unavailable, skipping: {e}")
            return None


def transcribe_audio(
    audio: AudioSource,
    transcribe_one: TranscribeFunc,
    *,
    config: PipelineConfig | None = None,
    **kwargs: Any,
) -> MergedTranscript:
    """Convenience wrapper: build a TranscriptionPipeline and run it once."""
    return TranscriptionPipeline(transcribe_one, config=config, **kwargs).run(audio)


def _describe_source(audio: AudioSource) -> str:
    if isinstance(audio, (bytes, bytearray)):
        return f"{len(audio) / (1024 * 1024):.2f}MB in-memory buffer"
    return str(audio)
