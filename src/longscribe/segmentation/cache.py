"""In-process memoization of segmentation results."""

from __future__ import annotations

import hashlib
import json
import threading
from collections import OrderedDict
from pathlib import Path

from longscribe.models.audio import AudioSegment, AudioSource, FileRefPayload
from longscribe.models.config import SegmentOptions
from longscribe.utils.io import bytes_checksum
from longscribe.utils.progress import log_step


def source_identity(source: AudioSource) -> str:
    """Identify an input without decoding it.

    Files are identified by resolved path, size and mtime; buffers by content.
    """
    if isinstance(source, (bytes, bytearray)):
        return f"bytes:{bytes_checksum(bytes(source))}"
    path = Path(source)
    stat = path.stat()
    return f"path:{path.resolve()}|{stat.st_size}|{stat.st_mtime_ns}"


def fingerprint(source: AudioSource, options: SegmentOptions, *, mode: str = "decoder") -> str:
    """Stable cache key for (input, segmentation-relevant options, mode)."""
    canonical = json.dumps(
        options.fingerprint_fields(), sort_keys=True, separators=(",", ":"),
    )
    key = "\n".join([source_identity(source), canonical, mode])
    return hashlib.sha256(key.encode()).hexdigest()


class SegmentationCache:
    """Thread-safe LRU of segment lists keyed by fingerprint.

    Stored segments are private copies, so callers releasing their payloads
    never empty a cached entry.
    """

    def __init__(self, max_entries: int = 16):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, list[AudioSegment]] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> list[AudioSegment] | None:
        with self._lock:
            segments = self._entries.get(key)
            if segments is None or not _payloads_present(segments):
                if segments is not None:
                    del self._entries[key]
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1

        log_step("Cache", f"Segmentation cache hit ({key[:12]}...)")
        return [s.copy() for s in segments]

    def put(self, key: str, segments: list[AudioSegment]) -> None:
        with self._lock:
            self._entries[key] = [s.copy() for s in segments]
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    @property
    def stats(self) -> dict[str, int]:
        return {"entries": len(self), "hits": self.hits, "misses": self.misses}


def _payloads_present(segments: list[AudioSegment]) -> bool:
    return all(
        s.payload.path.exists()
        for s in segments
        if isinstance(s.payload, FileRefPayload)
    )
