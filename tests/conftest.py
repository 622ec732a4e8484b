"""Shared fakes: a scripted decoder, segment builders and transcribe functions."""

from collections import Counter
from pathlib import Path

import pytest

from longscribe.errors import DecoderError
from longscribe.models.audio import AudioMetadata, AudioSegment, OwnedPayload, SilenceInterval
from longscribe.models.transcript import ChunkResult, TranscriptSegment, Word


class FakeDecoder:
    """Decoder double that never touches ffmpeg.

    Extracted files contain their own time range, e.g. b"60.500-140.500".
    """

    def __init__(
        self,
        duration=200.0,
        silences=(),
        *,
        available=True,
        fail_silence=False,
        fail_metadata=False,
        fail_extract_at=None,
    ):
        self.duration = duration
        self.silences = [SilenceInterval(s, e) for s, e in silences]
        self.available = available
        self.fail_silence = fail_silence
        self.fail_metadata = fail_metadata
        self.fail_extract_at = fail_extract_at
        self.calls = Counter()
        self.silence_args = []

    def probe(self):
        self.calls["probe"] += 1
        return self.available

    def metadata(self, path):
        self.calls["metadata"] += 1
        if self.fail_metadata:
            raise DecoderError("unreadable banner")
        return AudioMetadata(duration=self.duration, sample_rate=16000, channels=1, codec="aac")

    def detect_silence(self, path, threshold_db, min_duration_sec):
        self.calls["detect_silence"] += 1
        self.silence_args.append((threshold_db, min_duration_sec))
        if self.fail_silence:
            raise DecoderError("silencedetect crashed")
        return list(self.silences)

    def extract(self, path, start_sec, duration_sec, output_path):
        index = self.calls["extract"]
        self.calls["extract"] += 1
        if index == self.fail_extract_at:
            raise DecoderError("stream copy failed")
        output_path = Path(output_path)
        output_path.write_bytes(f"{start_sec:.3f}-{start_sec + duration_sec:.3f}".encode())
        return output_path

    def preprocess(self, path, target_sample_rate, target_channels, output_dir):
        self.calls["preprocess"] += 1
        return Path(path)


def build_segments(count, length=10.0):
    return [
        AudioSegment(
            index=i,
            start_sec=i * length,
            end_sec=(i + 1) * length,
            size_bytes=4,
            payload=OwnedPayload(b"data"),
        )
        for i in range(count)
    ]


def echo_transcribe(segment):
    """Provider double: one sub-segment spanning the chunk, two words."""
    text = f"chunk {segment.index}"
    return ChunkResult(
        text=text,
        language="en",
        duration=segment.duration,
        segments=[TranscriptSegment(
            id=0,
            start=0.0,
            end=segment.duration,
            text=text,
            words=[
                Word(word="chunk", start=0.0, end=0.5, confidence=0.9),
                Word(word=str(segment.index), start=0.5, end=1.0, confidence=0.8),
            ],
        )],
        raw={"index": segment.index},
    )


class HTTPError(Exception):
    """Exception shaped like an HTTP client error with a status code."""

    def __init__(self, status_code, message="request failed"):
        self.status_code = status_code
        super().__init__(message)


@pytest.fixture
def make_decoder():
    return FakeDecoder


@pytest.fixture
def make_segments():
    return build_segments


@pytest.fixture
def transcribe():
    return echo_transcribe


@pytest.fixture
def http_error():
    return HTTPError


@pytest.fixture
def audio_file(tmp_path):
    """A small stand-in recording on disk."""
    path = tmp_path / "episode.m4a"
    path.write_bytes(b"\x00" * 1000)
    return path


@pytest.fixture
def sleeps():
    """Collects requested sleeps; pass sleeps.append as the sleep function."""
    return []
