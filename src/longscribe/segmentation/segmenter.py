"""Segmenter: split a recording into provider-sized, speech-aligned chunks."""

from __future__ import annotations

import math
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

from longscribe.errors import DecoderError, SegmentationError
from longscribe.models.audio import (
    AudioMetadata,
    AudioSegment,
    AudioSource,
    FileRefPayload,
    OwnedPayload,
    SegmentPayload,
    SilenceInterval,
)
from longscribe.models.config import SegmentOptions
from longscribe.segmentation.cache import SegmentationCache, fingerprint
from longscribe.segmentation.silence import SilenceDetector
from longscribe.segmentation.splitter import (
    choose_split_points,
    effective_chunk_target,
    segment_bounds,
)
from longscribe.utils.progress import format_seconds, log_step, log_warning

BYTES_PER_MB = 1024 * 1024
# Rough compressed-audio rate used when nothing can decode the input.
FALLBACK_SECONDS_PER_MB = 60.0


class Decoder(Protocol):
    """What the Segmenter needs from an audio decoder."""

    def probe(self) -> bool: ...
    def metadata(self, path: Path | str) -> AudioMetadata: ...
    def detect_silence(
        self, path: Path | str, threshold_db: float, min_duration_sec: float,
    ) -> list[SilenceInterval]: ...
    def extract(
        self, path: Path | str, start_sec: float, duration_sec: float, output_path: Path | str,
    ) -> Path: ...
    def preprocess(
        self, path: Path | str, target_sample_rate: int, target_channels: int,
        output_dir: Path | str,
    ) -> Path: ...


def estimate_duration(size_bytes: int) -> float:
    """Duration guess for undecodable input: about one minute per MB."""
    return size_bytes / BYTES_PER_MB * FALLBACK_SECONDS_PER_MB


def source_size(source: AudioSource) -> int:
    if isinstance(source, (bytes, bytearray)):
        return len(source)
    return Path(source).stat().st_size


def source_payload(source: AudioSource) -> SegmentPayload:
    """Wrap the untouched input. Caller files are referenced, never copied."""
    if isinstance(source, (bytes, bytearray)):
        return OwnedPayload(bytes(source))
    return FileRefPayload(Path(source))


class Segmenter:
    """Splits audio at silences with a duration-based hard-split backstop.

    Uses the decoder when it is available; otherwise slices proportional
    byte ranges, which cannot respect speech boundaries.
    """

    def __init__(
        self,
        decoder: Decoder,
        *,
        cache: SegmentationCache | None = None,
        temp_root: Path | str | None = None,
    ):
        self.decoder = decoder
        self.cache = cache
        self.temp_root = temp_root
        self.silence = SilenceDetector(decoder)

    def segment(self, source: AudioSource, options: SegmentOptions) -> list[AudioSegment]:
        """Return contiguous segments covering the whole input."""
        if not isinstance(source, (bytes, bytearray)) and not Path(source).exists():
            raise SegmentationError(f"Audio file not found: {source}")

        available = self.decoder.probe()
        key = None
        if self.cache is not None:
            key = fingerprint(source, options, mode="decoder" if available else "fallback")
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        if available:
            segments = self._segment_with_decoder(source, options)
        else:
            log_warning("FFmpeg is not available. Falling back to byte-range segmentation.")
            segments = self.segment_fallback(source, options)

        if self.cache is not None and key is not None:
            self.cache.put(key, segments)
        return segments

    def _segment_with_decoder(
        self, source: AudioSource, options: SegmentOptions,
    ) -> list[AudioSegment]:
        work_dir = Path(tempfile.mkdtemp(prefix="longscribe-", dir=self.temp_root))
        keep = options.preserve_intermediates

        try:
            input_path = self._materialize(source, work_dir)
            working = input_path
            if options.enable_preprocessing:
                working = self.decoder.preprocess(
                    input_path,
                    options.target_sample_rate_hz,
                    options.target_channels,
                    work_dir,
                )

            try:
                info = self.decoder.metadata(working)
            except DecoderError as e:
                raise SegmentationError(f"Could not read audio metadata: {e}") from e

            log_step(
                "Segment",
                f"Audio metadata: {info.duration:.1f}s, {info.sample_rate}Hz, "
                f"{info.channels}ch, {info.codec}",
            )

            if info.duration <= 0:
                log_warning("Decoded duration unknown, falling back to byte-range segmentation")
                return self.segment_fallback(source, options)

            input_size = source_size(source)
            if (
                input_size <= options.max_upload_bytes
                and info.duration <= options.max_chunk_duration_sec
            ):
                log_step("Segment", "Input fits the upload budget, no splitting needed")
                return [AudioSegment(
                    index=0,
                    start_sec=0.0,
                    end_sec=info.duration,
                    size_bytes=input_size,
                    payload=source_payload(source),
                )]

            silences = self.silence.detect(
                working,
                options.silence_threshold_db,
                options.min_silence_ms / 1000,
                duration=info.duration,
            )

            target = effective_chunk_target(
                options.max_chunk_duration_sec,
                info.duration,
                working.stat().st_size,
                options.max_upload_bytes,
            )
            points = choose_split_points(silences, info.duration, target)
            log_step(
                "Segment",
                f"{len(points) + 1} segments (target {target:.1f}s), split points: "
                + (", ".join(format_seconds(p) for p in points) or "none"),
            )

            segments = self._extract_all(
                working, segment_bounds(points, info.duration), work_dir, keep,
            )
            if keep:
                log_step("Segment", f"Intermediates preserved in {work_dir}")
            return segments

        finally:
            if not keep:
                shutil.rmtree(work_dir, ignore_errors=True)

    def _materialize(self, source: AudioSource, work_dir: Path) -> Path:
        if isinstance(source, (bytes, bytearray)):
            path = work_dir / "input.m4a"
            path.write_bytes(bytes(source))
            return path
        return Path(source)

    def _extract_all(
        self,
        working: Path,
        bounds: list[tuple[float, float]],
        work_dir: Path,
        keep: bool,
    ) -> list[AudioSegment]:
        suffix = working.suffix or ".m4a"
        segments: list[AudioSegment] = []

        for i, (start, end) in enumerate(bounds):
            out = work_dir / f"segment_{i:03d}{suffix}"
            try:
                self.decoder.extract(working, start, end - start, out)
            except DecoderError as e:
                raise SegmentationError(
                    f"Failed to extract segment {i} ({start:.2f}s-{end:.2f}s): {e}",
                    segment_index=i,
                    start_sec=start,
                    end_sec=end,
                ) from e

            size = out.stat().st_size
            if keep:
                payload: SegmentPayload = FileRefPayload(out)
            else:
                payload = OwnedPayload(out.read_bytes())
                out.unlink()

            segments.append(AudioSegment(
                index=i,
                start_sec=start,
                end_sec=end,
                size_bytes=size,
                payload=payload,
            ))

        return segments

    def segment_fallback(
        self, source: AudioSource, options: SegmentOptions,
    ) -> list[AudioSegment]:
        """Slice the raw bytes into equal proportional pieces."""
        size = source_size(source)
        estimated = estimate_duration(size)

        if size <= options.max_upload_bytes:
            log_step(
                "Segment",
                f"File size {size / BYTES_PER_MB:.2f}MB is within limit, no segmentation needed",
            )
            return [AudioSegment(
                index=0,
                start_sec=0.0,
                end_sec=estimated,
                size_bytes=size,
                payload=source_payload(source),
            )]

        by_size = math.ceil(size / options.max_upload_bytes)
        by_duration = math.ceil(estimated / options.max_chunk_duration_sec)
        by_window = math.ceil(estimated / options.hard_split_window_sec)
        count = max(by_size, by_duration, by_window)
        log_step(
            "Segment",
            f"Fallback: {count} byte-range segments over ~{estimated:.0f}s "
            f"(by size: {by_size}, by duration: {by_duration}, by window: {by_window})",
        )

        step = estimated / count
        segments: list[AudioSegment] = []
        for i, data in enumerate(_byte_ranges(source, size, count)):
            start = i * step
            end = estimated if i == count - 1 else (i + 1) * step
            segments.append(AudioSegment(
                index=i,
                start_sec=start,
                end_sec=end,
                size_bytes=len(data),
                payload=OwnedPayload(data),
            ))
        return segments


def _byte_ranges(source: AudioSource, size: int, count: int):
    """Yield count contiguous slices covering [0, size)."""
    offsets = [math.floor(i / count * size) for i in range(count)] + [size]

    if isinstance(source, (bytes, bytearray)):
        for lo, hi in zip(offsets, offsets[1:]):
            yield bytes(source[lo:hi])
        return

    with open(source, "rb") as f:
        for lo, hi in zip(offsets, offsets[1:]):
            f.seek(lo)
            yield f.read(hi - lo)
