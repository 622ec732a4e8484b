"""Tests for the Segmenter, decoder-backed and fallback modes."""

import math

import pytest

from longscribe.errors import SegmentationError
from longscribe.models.audio import FileRefPayload, OwnedPayload
from longscribe.models.config import SegmentOptions
from longscribe.segmentation.segmenter import Segmenter, estimate_duration

MB = 1024 * 1024


def assert_contiguous(segments, duration):
    assert segments[0].start_sec == 0.0
    for prev, seg in zip(segments, segments[1:]):
        assert seg.start_sec == prev.end_sec
    assert segments[-1].end_sec == pytest.approx(duration)
    assert sum(s.duration for s in segments) == pytest.approx(duration)
    assert [s.index for s in segments] == list(range(len(segments)))


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


# --- no split needed ---


def test_small_input_is_one_segment(make_decoder, tmp_path, work_dir):
    """40s, 5MB, limits 25MB/85s: one segment referencing the input."""
    audio = tmp_path / "short.m4a"
    audio.write_bytes(b"\x00" * (5 * MB))
    decoder = make_decoder(duration=40.0)

    segments = Segmenter(decoder, temp_root=work_dir).segment(
        audio, SegmentOptions(max_upload_size_mb=25),
    )

    assert len(segments) == 1
    seg = segments[0]
    assert (seg.start_sec, seg.end_sec) == (0.0, 40.0)
    assert seg.size_bytes == 5 * MB
    assert seg.payload == FileRefPayload(audio)
    assert decoder.calls["extract"] == 0
    assert audio.exists()


def test_small_bytes_input_is_owned(make_decoder, work_dir):
    data = b"\x01" * 2000
    segments = Segmenter(make_decoder(duration=30.0), temp_root=work_dir).segment(
        data, SegmentOptions(),
    )
    assert len(segments) == 1
    assert segments[0].payload == OwnedPayload(data)


# --- silence-aligned splitting ---


def test_splits_at_silences(make_decoder, audio_file, work_dir):
    decoder = make_decoder(duration=200.0, silences=[(60, 61), (140, 141)])
    segments = Segmenter(decoder, temp_root=work_dir).segment(
        audio_file, SegmentOptions(max_chunk_duration_sec=90),
    )

    assert [(s.start_sec, s.end_sec) for s in segments] == [
        (0.0, 60.5), (60.5, 140.5), (140.5, 200.0),
    ]
    assert segments[1].read_bytes() == b"60.500-140.500"
    assert all(s.is_owned for s in segments)
    assert decoder.calls["preprocess"] == 1


def test_bytes_input_is_split(make_decoder, work_dir):
    decoder = make_decoder(duration=200.0, silences=[(60, 61), (140, 141)])
    segments = Segmenter(decoder, temp_root=work_dir).segment(
        b"\x00" * 1000, SegmentOptions(max_chunk_duration_sec=90),
    )
    assert len(segments) == 3
    assert segments[0].read_bytes() == b"0.000-60.500"


def test_preprocessing_can_be_disabled(make_decoder, audio_file, work_dir):
    decoder = make_decoder(duration=200.0)
    Segmenter(decoder, temp_root=work_dir).segment(
        audio_file, SegmentOptions(enable_preprocessing=False),
    )
    assert decoder.calls["preprocess"] == 0


@pytest.mark.parametrize("duration,silences", [
    (200.0, []),
    (300.0, [(30, 30.2), (95, 96), (180, 183)]),
    (1234.5, [(t, t + 0.6) for t in range(40, 1200, 70)]),
    (86.0, [(43, 44)]),
])
def test_segments_tile_the_timeline(make_decoder, audio_file, work_dir, duration, silences):
    decoder = make_decoder(duration=duration, silences=silences)
    segments = Segmenter(decoder, temp_root=work_dir).segment(audio_file, SegmentOptions())

    assert_contiguous(segments, duration)
    # Everything but the tail stays under the chunk limit.
    assert all(s.duration <= 85.0 for s in segments[:-1])
    assert segments[-1].duration <= 85.0 + 10.0


def test_byte_budget_shortens_chunks(make_decoder, tmp_path, work_dir):
    audio = tmp_path / "dense.m4a"
    audio.write_bytes(b"\x00" * 3000)
    decoder = make_decoder(duration=200.0)
    options = SegmentOptions(max_upload_size_mb=0.001)  # 1048 bytes

    segments = Segmenter(decoder, temp_root=work_dir).segment(audio, options)

    assert len(segments) == 3
    assert all(s.duration < 70.0 for s in segments)
    assert_contiguous(segments, 200.0)


# --- temp file ownership ---


def test_temp_files_removed(make_decoder, audio_file, work_dir):
    decoder = make_decoder(duration=300.0)
    Segmenter(decoder, temp_root=work_dir).segment(audio_file, SegmentOptions())
    assert list(work_dir.iterdir()) == []


def test_preserved_segments_are_file_refs(make_decoder, audio_file, work_dir):
    decoder = make_decoder(duration=300.0)
    segments = Segmenter(decoder, temp_root=work_dir).segment(
        audio_file, SegmentOptions(preserve_intermediates=True),
    )

    assert len(segments) == 4
    for seg in segments:
        assert isinstance(seg.payload, FileRefPayload)
        assert seg.payload.path.exists()
        assert seg.payload.path.name == f"segment_{seg.index:03d}.m4a"
        seg.release()
        assert seg.payload.path.exists()


def test_extraction_failure_is_fatal_and_cleans_up(make_decoder, audio_file, work_dir):
    decoder = make_decoder(duration=300.0, fail_extract_at=1)

    with pytest.raises(SegmentationError) as exc_info:
        Segmenter(decoder, temp_root=work_dir).segment(audio_file, SegmentOptions())

    err = exc_info.value
    assert err.segment_index == 1
    assert (err.start_sec, err.end_sec) == (pytest.approx(75.0), pytest.approx(150.0))
    assert list(work_dir.iterdir()) == []


def test_metadata_failure_is_fatal(make_decoder, audio_file, work_dir):
    with pytest.raises(SegmentationError, match="metadata"):
        Segmenter(make_decoder(fail_metadata=True), temp_root=work_dir).segment(
            audio_file, SegmentOptions(),
        )


def test_missing_file(make_decoder, tmp_path):
    with pytest.raises(SegmentationError, match="not found"):
        Segmenter(make_decoder()).segment(tmp_path / "nope.m4a", SegmentOptions())


def test_silence_failure_still_segments(make_decoder, audio_file, work_dir):
    decoder = make_decoder(duration=400.0, fail_silence=True)
    segments = Segmenter(decoder, temp_root=work_dir).segment(audio_file, SegmentOptions())
    assert_contiguous(segments, 400.0)


# --- fallback mode ---


def test_fallback_without_decoder():
    """60MB, no decoder, 20MB budget: three proportional byte ranges."""
    data = bytes(range(256)) * (60 * MB // 256)
    options = SegmentOptions(
        max_upload_size_mb=20,
        max_chunk_duration_sec=3600,
        hard_split_window_sec=3600,
    )
    segments = Segmenter(_Unavailable()).segment(data, options)

    assert len(segments) == math.ceil(60 / 20)
    assert_contiguous(segments, estimate_duration(len(data)))
    assert sum(s.size_bytes for s in segments) == len(data)
    assert b"".join(s.read_bytes() for s in segments) == data


def test_fallback_duration_knobs_raise_count(make_decoder, tmp_path):
    audio = tmp_path / "big.m4a"
    audio.write_bytes(b"\x00" * (3 * MB))  # ~180s estimated
    segments = Segmenter(make_decoder(available=False)).segment(
        audio, SegmentOptions(max_upload_size_mb=2),
    )
    # 180s / 30s hard-split window
    assert len(segments) == 6
    assert sum(s.size_bytes for s in segments) == 3 * MB


def test_fallback_small_input_is_untouched(make_decoder, audio_file):
    segments = Segmenter(make_decoder(available=False)).segment(audio_file, SegmentOptions())
    assert len(segments) == 1
    assert segments[0].payload == FileRefPayload(audio_file)


def test_zero_duration_uses_fallback(make_decoder, tmp_path, work_dir):
    audio = tmp_path / "odd.m4a"
    audio.write_bytes(b"\x00" * 5000)
    decoder = make_decoder(duration=0.0)
    segments = Segmenter(decoder, temp_root=work_dir).segment(
        audio, SegmentOptions(max_upload_size_mb=0.001),
    )
    assert len(segments) == 5
    assert decoder.calls["detect_silence"] == 0


class _Unavailable:
    def probe(self):
        return False
