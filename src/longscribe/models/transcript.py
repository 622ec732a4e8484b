"""Transcript data models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class Word(BaseModel):
    """A single transcribed word with timing."""

    word: str
    start: float
    end: float
    confidence: float = 0.0
    speaker: str | None = None


class TranscriptSegment(BaseModel):
    """A provider sub-segment of transcribed speech."""

    id: int = 0
    start: float
    end: float
    text: str = ""
    words: list[Word] = Field(default_factory=list)
    speaker: str | None = None

    @property
    def duration(self) -> float:
        return self.end - self.start

    def shifted(self, offset: float, new_id: int) -> TranscriptSegment:
        """Return a copy moved onto the global timeline."""
        return self.model_copy(update={
            "id": new_id,
            "start": self.start + offset,
            "end": self.end + offset,
            "words": [
                w.model_copy(update={
                    "start": w.start + offset,
                    "end": w.end + offset,
                })
                for w in self.words
            ],
        })


class ChunkResult(BaseModel):
    """Transcription of one audio segment, as returned by a provider."""

    text: str = ""
    language: str | None = None
    duration: float | None = None
    segments: list[TranscriptSegment] = Field(default_factory=list)
    raw: Any = None

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    @classmethod
    def from_provider(cls, payload: dict | str) -> ChunkResult:
        """Adapt a verbose_json (or plain text) provider response."""
        if isinstance(payload, str):
            return cls(text=payload, raw=payload)

        segments = []
        for i, seg in enumerate(payload.get("segments") or []):
            words = [
                Word(
                    word=str(w.get("word", "")).strip(),
                    start=float(w.get("start", 0.0)),
                    end=float(w.get("end", 0.0)),
                    confidence=float(w.get("probability", w.get("confidence", 0.0)) or 0.0),
                )
                for w in seg.get("words") or []
            ]
            segments.append(TranscriptSegment(
                id=int(seg.get("id", i)),
                start=float(seg.get("start", 0.0)),
                end=float(seg.get("end", 0.0)),
                text=str(seg.get("text") or ""),
                words=words,
            ))

        return cls(
            text=str(payload.get("text") or ""),
            language=payload.get("language"),
            duration=payload.get("duration"),
            segments=segments,
            raw=payload,
        )


class Speaker(BaseModel):
    """A speaker identity from a diarization result."""

    id: str
    label: str


class SpeakerTurn(BaseModel):
    """A span of the recording attributed to one speaker."""

    start: float
    end: float
    speaker: Speaker


class MergedTranscript(BaseModel):
    """Final transcript reconstructed from all chunk results."""

    version: str = "1.0"
    text: str = ""
    language: str | None = None
    duration: float = 0.0
    segments: list[TranscriptSegment] = Field(default_factory=list)
    speakers: list[Speaker] = Field(default_factory=list)
    raw: dict[str, Any] = Field(default_factory=lambda: {"chunks": []})

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.segments

    @property
    def word_count(self) -> int:
        return sum(len(s.words) if s.words else len(s.text.split()) for s in self.segments)
