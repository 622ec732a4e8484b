"""Speaker diarization: label transcript spans by overlap with speaker turns."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Callable

from longscribe.models.audio import AudioSource
from longscribe.models.transcript import (
    MergedTranscript,
    Speaker,
    SpeakerTurn,
    TranscriptSegment,
)
from longscribe.utils.progress import log_step, log_warning

DiarizeFunc = Callable[[AudioSource], list[SpeakerTurn]]


def speaker_label(speaker_id: str) -> str:
    """'SPEAKER_01' → 'Speaker 01'; ids without digits become 'Speaker 1'."""
    match = re.search(r"\d+", speaker_id)
    return f"Speaker {match.group() if match else '1'}"


def find_overlapping_speaker(
    start: float,
    end: float,
    turns: list[SpeakerTurn],
) -> Speaker | None:
    """Speaker whose turn overlaps [start, end] the most, if any overlaps."""
    best: Speaker | None = None
    best_overlap = 0.0
    for turn in turns:
        overlap = min(end, turn.end) - max(start, turn.start)
        if overlap > best_overlap:
            best_overlap = overlap
            best = turn.speaker
    return best


def merge_adjacent_turns(turns: list[SpeakerTurn], max_gap: float) -> list[SpeakerTurn]:
    """Fuse consecutive turns of one speaker separated by at most max_gap."""
    merged: list[SpeakerTurn] = []
    for turn in sorted(turns, key=lambda t: t.start):
        if (
            merged
            and merged[-1].speaker.id == turn.speaker.id
            and turn.start - merged[-1].end <= max_gap
        ):
            merged[-1] = merged[-1].model_copy(update={"end": max(merged[-1].end, turn.end)})
        else:
            merged.append(turn.model_copy())
    return merged


def _speaker_order(speaker: Speaker) -> tuple[int, str]:
    match = re.search(r"\d+", speaker.label)
    return (int(match.group()) if match else -1, speaker.label)


def unique_speakers(turns: list[SpeakerTurn]) -> list[Speaker]:
    """Distinct speakers ordered by their label number, so 2 sorts before 10."""
    seen: dict[str, Speaker] = {}
    for turn in turns:
        seen.setdefault(turn.speaker.id, turn.speaker)
    return sorted(seen.values(), key=_speaker_order)


class DiarizationEnhancer:
    """Applies an external diarization result to a merged transcript.

    Diarization is an enhancement: any failure leaves the transcript as is.
    """

    def __init__(self, diarize: DiarizeFunc, *, merge_threshold_sec: float | None = None):
        self.diarize = diarize
        self.merge_threshold_sec = merge_threshold_sec

    def enhance(self, transcript: MergedTranscript, audio: AudioSource) -> MergedTranscript:
        try:
            log_step("Diarize", "Starting speaker diarization...")
            turns = self.diarize(audio)
            if not turns:
                log_warning("No speaker turns detected")
                return transcript

            if self.merge_threshold_sec is not None:
                turns = merge_adjacent_turns(turns, self.merge_threshold_sec)

            speakers = unique_speakers(turns)
            segments = [self._label_segment(seg, turns) for seg in transcript.segments]
        except Exception as e:
            log_warning(f"Speaker diarization failed, keeping unlabeled transcript: {e}")
            return transcript

        log_step("Diarize", f"Diarization completed: {len(speakers)} speakers detected")
        return transcript.model_copy(update={"segments": segments, "speakers": speakers})

    def _label_segment(
        self, seg: TranscriptSegment, turns: list[SpeakerTurn],
    ) -> TranscriptSegment:
        speaker = find_overlapping_speaker(seg.start, seg.end, turns)
        words = []
        for w in seg.words:
            word_speaker = find_overlapping_speaker(w.start, w.end, turns)
            words.append(w.model_copy(update={
                "speaker": word_speaker.id if word_speaker else None,
            }))
        return seg.model_copy(update={
            "speaker": speaker.id if speaker else None,
            "words": words,
        })


def pyannote_diarizer(
    num_speakers: int | None = None,
    *,
    model: str = "pyannote/speaker-diarization-3.1",
) -> DiarizeFunc:
    """Build a DiarizeFunc backed by pyannote.audio.

    Needs the pyannote extra and a HuggingFace token in HF_TOKEN.
    """
    try:
        from pyannote.audio import Pipeline
    except ImportError:
        raise ImportError(
            "pyannote.audio is required for diarization. "
            "Install with: pip install longscribe[diarization]"
        )

    hf_token = os.environ.get("HF_TOKEN")
    if not hf_token:
        raise RuntimeError(
            "HF_TOKEN not set: pyannote requires a HuggingFace token."
        )

    pipeline = Pipeline.from_pretrained(model, use_auth_token=hf_token)

    def diarize(audio: AudioSource) -> list[SpeakerTurn]:
        kwargs = {}
        if num_speakers:
            kwargs["num_speakers"] = num_speakers

        if isinstance(audio, (bytes, bytearray)):
            with tempfile.TemporaryDirectory(prefix="longscribe-diarize-") as tmp:
                path = Path(tmp) / "input.m4a"
                path.write_bytes(bytes(audio))
                diarization = pipeline(str(path), **kwargs)
        else:
            diarization = pipeline(str(audio), **kwargs)

        turns = []
        for turn, _, speaker in diarization.itertracks(yield_label=True):
            turns.append(SpeakerTurn(
                start=turn.start,
                end=turn.end,
                speaker=Speaker(id=speaker, label=speaker_label(speaker)),
            ))
        return turns

    return diarize
