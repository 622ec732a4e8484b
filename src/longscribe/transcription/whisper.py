"""Local transcription provider backed by faster-whisper."""

from __future__ import annotations

import threading

from longscribe.models.audio import AudioSegment
from longscribe.models.config import TranscriptionConfig
from longscribe.models.transcript import ChunkResult
from longscribe.utils.progress import log_step


class WhisperTranscriber:
    """TranscribeFunc that runs faster-whisper on each segment.

    The model is loaded once on first use and shared by all worker threads.
    """

    def __init__(self, config: TranscriptionConfig | None = None):
        self.config = config or TranscriptionConfig()
        self._model = None
        self._lock = threading.Lock()

    def _load(self):
        with self._lock:
            if self._model is not None:
                return self._model
            try:
                from faster_whisper import WhisperModel
            except ImportError:
                raise ImportError(
                    "faster-whisper is required for local transcription. "
                    "Install with: pip install longscribe[whisper]"
                )

            device = self.config.device
            compute_type = "int8" if device == "cpu" else "float16"
            log_step(
                "Transcribe",
                f"Loading model: {self.config.model} ({device}, {compute_type})",
            )
            self._model = WhisperModel(
                self.config.model, device=device, compute_type=compute_type,
            )
            return self._model

    def __call__(self, segment: AudioSegment) -> ChunkResult:
        model = self._load()
        segments_gen, info = model.transcribe(
            segment.open(),
            beam_size=self.config.beam_size,
            word_timestamps=self.config.word_timestamps,
            language=self.config.language,
        )

        sub_segments = []
        for i, seg in enumerate(segments_gen):
            words = [
                {
                    "word": w.word,
                    "start": w.start,
                    "end": w.end,
                    "probability": w.probability,
                }
                for w in (seg.words or [])
            ]
            sub_segments.append({
                "id": i,
                "start": seg.start,
                "end": seg.end,
                "text": seg.text.strip(),
                "words": words,
            })

        payload = {
            "text": " ".join(s["text"] for s in sub_segments if s["text"]),
            "language": info.language,
            "duration": info.duration,
            "segments": sub_segments,
        }
        return ChunkResult.from_provider(payload)
