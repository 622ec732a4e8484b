"""Tests for timeline validation and chunk merging."""

import pytest

from longscribe.errors import TimelineGapError
from longscribe.models.audio import AudioSegment, OwnedPayload
from longscribe.models.transcript import ChunkResult, TranscriptSegment, Word
from longscribe.transcription.merge import merge_chunk_results, validate_timeline


def seg(index, start, end):
    return AudioSegment(index=index, start_sec=start, end_sec=end, size_bytes=1,
                        payload=OwnedPayload(b"x"))


def chunk(text, *subs, raw=None):
    return ChunkResult(text=text, language="en", segments=list(subs), raw=raw or {"text": text})


# --- validate_timeline ---


def test_contiguous_timeline_passes():
    validate_timeline([seg(0, 0, 45), seg(1, 45, 90), seg(2, 90, 100)])


def test_small_drift_is_tolerated():
    validate_timeline([seg(0, 0, 45), seg(1, 45.8, 90)])


def test_gap_is_rejected():
    with pytest.raises(TimelineGapError, match="Timeline gap detected before segment 1") as exc_info:
        validate_timeline([seg(0, 0, 45), seg(1, 47, 90)])
    assert exc_info.value.previous_end == 45
    assert exc_info.value.start == 47


def test_empty_segment_is_rejected():
    with pytest.raises(TimelineGapError, match="Segment 0 has no length") as exc_info:
        validate_timeline([seg(0, 10, 10)])
    assert "previous segment" not in str(exc_info.value)


def test_inverted_segment_is_rejected():
    with pytest.raises(TimelineGapError, match="starts at 50.00s, ends at 45.00s"):
        validate_timeline([seg(0, 0, 45), seg(1, 50, 45)])


# --- merge_chunk_results ---


def test_offsets_applied_to_segments_and_words():
    first = chunk(
        "Hello there.",
        TranscriptSegment(id=0, start=0.0, end=2.0, text="Hello there.", words=[
            Word(word="Hello", start=0.0, end=0.8),
            Word(word="there.", start=0.9, end=2.0),
        ]),
    )
    second = chunk(
        "General Kenobi.",
        TranscriptSegment(id=0, start=1.5, end=3.0, text="General Kenobi.", words=[
            Word(word="General", start=1.5, end=2.2),
            Word(word="Kenobi.", start=2.3, end=3.0),
        ]),
    )

    merged = merge_chunk_results([first, second], [seg(0, 0, 45), seg(1, 45, 90)])

    assert merged.text == "Hello there. General Kenobi."
    assert merged.duration == 90
    assert merged.language == "en"
    assert [s.id for s in merged.segments] == [0, 1]
    moved = merged.segments[1]
    assert (moved.start, moved.end) == (pytest.approx(46.5), pytest.approx(48.0))
    assert [w.start for w in moved.words] == [pytest.approx(46.5), pytest.approx(47.3)]


def test_ids_are_dense_across_chunks():
    subs = [TranscriptSegment(id=7, start=i, end=i + 1, text=f"s{i}") for i in range(3)]
    merged = merge_chunk_results(
        [chunk("a", *subs), chunk("b", *subs)],
        [seg(0, 0, 10), seg(1, 10, 20)],
    )
    assert [s.id for s in merged.segments] == list(range(6))
    assert merged.segments[3].start == pytest.approx(10.0)


def test_empty_chunks_are_dropped():
    merged = merge_chunk_results(
        [chunk("one"), chunk("   "), chunk("three")],
        [seg(0, 0, 10), seg(1, 10, 20), seg(2, 20, 30)],
    )
    assert merged.text == "one three"
    assert merged.duration == 30


def test_raw_chunks_preserved_in_order():
    merged = merge_chunk_results(
        [chunk("a", raw={"n": 0}), chunk("", raw={"n": 1})],
        [seg(0, 0, 10), seg(1, 10, 20)],
    )
    assert merged.raw == {"chunks": [{"n": 0}, {"n": 1}]}


def test_all_empty_gives_empty_transcript():
    merged = merge_chunk_results([chunk(""), chunk(" ")], [seg(0, 0, 10), seg(1, 10, 20)])
    assert merged.is_empty
    assert merged.text == ""
    assert merged.segments == []
    assert merged.duration == 20


def test_empty_text_recovered_before_merge():
    textless = chunk("", TranscriptSegment(start=0, end=1, text="recovered words"))
    merged = merge_chunk_results([textless], [seg(0, 0, 10)])
    assert merged.text == "recovered words"


def test_count_mismatch():
    with pytest.raises(ValueError):
        merge_chunk_results([chunk("a")], [seg(0, 0, 10), seg(1, 10, 20)])


def test_gap_rejected_during_merge():
    with pytest.raises(TimelineGapError):
        merge_chunk_results([chunk("a"), chunk("b")], [seg(0, 0, 10), seg(1, 12, 20)])
