"""Audio-side data models: metadata, silence intervals and segments."""

from __future__ import annotations

import io
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import BinaryIO, Union

from pydantic import BaseModel

# A source recording is either a file on disk or an in-memory buffer.
AudioSource = Union[Path, str, bytes]


class AudioMetadata(BaseModel):
    """Decoded properties of a whole input."""

    duration: float = 0.0
    sample_rate: int = 44100
    channels: int = 2
    codec: str = "unknown"
    bit_rate_kbps: int | None = None


@dataclass(frozen=True)
class SilenceInterval:
    """A detected quiet span, in seconds."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def midpoint(self) -> float:
        return (self.start + self.end) / 2


@dataclass(frozen=True)
class OwnedPayload:
    """Segment bytes held in memory; the holder drops them after use."""

    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class FileRefPayload:
    """Segment persisted on disk. Never deleted by the consumer."""

    path: Path

    @property
    def size_bytes(self) -> int:
        return self.path.stat().st_size


SegmentPayload = Union[OwnedPayload, FileRefPayload]


@dataclass
class AudioSegment:
    """One contiguous slice of the source recording."""

    index: int
    start_sec: float
    end_sec: float
    size_bytes: int
    payload: SegmentPayload = field(repr=False)

    @property
    def duration(self) -> float:
        return self.end_sec - self.start_sec

    @property
    def is_owned(self) -> bool:
        return isinstance(self.payload, OwnedPayload)

    def read_bytes(self) -> bytes:
        if isinstance(self.payload, OwnedPayload):
            return self.payload.data
        return self.payload.path.read_bytes()

    def open(self) -> BinaryIO | str:
        """Return something a decoder library can read: a path or a buffer."""
        if isinstance(self.payload, OwnedPayload):
            return io.BytesIO(self.payload.data)
        return str(self.payload.path)

    def release(self) -> None:
        """Drop owned bytes once the segment has been consumed."""
        if isinstance(self.payload, OwnedPayload):
            self.payload = OwnedPayload(b"")

    def copy(self) -> AudioSegment:
        return replace(self)

    def describe(self) -> str:
        return (
            f"#{self.index} {self.start_sec:.2f}s-{self.end_sec:.2f}s "
            f"({self.size_bytes / 1024 / 1024:.2f}MB)"
        )
