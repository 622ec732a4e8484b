"""FFmpeg command runner and the decoder adapter built on its stderr contract."""

from __future__ import annotations

import re
import shutil
import subprocess
from pathlib import Path

from longscribe.errors import DecoderError
from longscribe.models.audio import AudioMetadata, SilenceInterval
from longscribe.utils.progress import log_step, log_warning

DURATION_RE = re.compile(r"Duration: (\d+):(\d+):(\d+\.\d+)")
STREAM_RE = re.compile(r"Audio: (\w+).*?(\d+) Hz.*?(\d+) channels?")
LAYOUT_RE = re.compile(r"Audio: (\w+).*?(\d+) Hz, (mono|stereo)")
BITRATE_RE = re.compile(r"bitrate: (\d+) kb/s")
SILENCE_START_RE = re.compile(r"silence_start: (-?\d+(?:\.\d+)?)")
SILENCE_END_RE = re.compile(r"silence_end: (-?\d+(?:\.\d+)?)")

FFMPEG_CANDIDATES = (
    "ffmpeg",
    "/usr/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/opt/homebrew/bin/ffmpeg",
)

LAYOUT_CHANNELS = {"mono": 1, "stereo": 2}


class FFmpegError(DecoderError):
    """Raised when an FFmpeg command fails."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"FFmpeg failed (rc={returncode}): {stderr[:500]}")


def run_ffmpeg(
    args: list[str],
    *,
    binary: str = "ffmpeg",
    check: bool = True,
) -> subprocess.CompletedProcess:
    """Run an FFmpeg command with standard options."""
    cmd = [binary, "-y", "-hide_banner", "-loglevel", "error"] + args
    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise FFmpegError(cmd, -1, str(e)) from e
    if check and result.returncode != 0:
        raise FFmpegError(cmd, result.returncode, result.stderr)
    return result


def _run_analysis(args: list[str], *, binary: str) -> subprocess.CompletedProcess:
    """Run FFmpeg at info log level so analysis filters report on stderr."""
    cmd = [binary, "-hide_banner", "-nostats"] + args
    try:
        return subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise FFmpegError(cmd, -1, str(e)) from e


def parse_metadata(stderr: str) -> AudioMetadata:
    """Parse duration, stream format and bitrate from FFmpeg's input banner.

    Anything that does not match falls back to the model defaults
    (0s, 44100 Hz, 2 channels) instead of failing the run.
    """
    duration = 0.0
    match = DURATION_RE.search(stderr)
    if match:
        hours, mins, secs = match.groups()
        duration = int(hours) * 3600 + int(mins) * 60 + float(secs)

    fields: dict = {"duration": duration}

    stream = STREAM_RE.search(stderr)
    if stream:
        fields.update(
            codec=stream.group(1),
            sample_rate=int(stream.group(2)),
            channels=int(stream.group(3)),
        )
    else:
        layout = LAYOUT_RE.search(stderr)
        if layout:
            fields.update(
                codec=layout.group(1),
                sample_rate=int(layout.group(2)),
                channels=LAYOUT_CHANNELS[layout.group(3)],
            )

    bitrate = BITRATE_RE.search(stderr)
    if bitrate:
        fields["bit_rate_kbps"] = int(bitrate.group(1))

    return AudioMetadata(**fields)


def parse_silence(stderr: str) -> list[SilenceInterval]:
    """Pair silence_start/silence_end markers in the order FFmpeg emits them."""
    intervals: list[SilenceInterval] = []
    current_start: float | None = None

    for line in stderr.splitlines():
        start_match = SILENCE_START_RE.search(line)
        if start_match:
            current_start = max(0.0, float(start_match.group(1)))
            continue
        end_match = SILENCE_END_RE.search(line)
        if end_match and current_start is not None:
            end = float(end_match.group(1))
            if end > current_start:
                intervals.append(SilenceInterval(current_start, end))
            current_start = None

    return sorted(intervals, key=lambda s: s.start)


class FFmpegDecoder:
    """Decoder adapter over the ffmpeg binary.

    Only the textual stderr contract is relied on: the input banner for
    metadata, silencedetect markers for silence, and stream copy for
    extraction.
    """

    def __init__(self, ffmpeg_path: str | None = None):
        self.user_path = ffmpeg_path
        self._binary: str | None = None
        self._probed = False

    @property
    def binary(self) -> str:
        if not self.probe():
            raise DecoderError("FFmpeg is not available on this system")
        assert self._binary is not None
        return self._binary

    def probe(self) -> bool:
        """Find a working ffmpeg binary. The answer is memoized."""
        if self._probed:
            return self._binary is not None
        self._probed = True

        candidates: list[str] = []
        if self.user_path and self.user_path.strip():
            candidates.append(self.user_path.strip())
        found = shutil.which("ffmpeg")
        if found:
            candidates.append(found)
        candidates.extend(FFMPEG_CANDIDATES)

        for candidate in candidates:
            try:
                result = subprocess.run(
                    [candidate, "-version"],
                    capture_output=True,
                    text=True,
                )
            except OSError:
                continue
            if result.returncode == 0:
                self._binary = candidate
                return True
            if candidate == self.user_path:
                log_warning(f"Configured FFmpeg path is not usable: {candidate}")

        return False

    def metadata(self, path: Path | str) -> AudioMetadata:
        """Read duration, sample rate, channels and codec for an input."""
        path = Path(path)
        if not path.exists():
            raise DecoderError(f"Audio file not found: {path}")

        # Without an output ffmpeg exits non-zero but still prints the banner.
        result = _run_analysis(["-i", str(path)], binary=self.binary)
        info = parse_metadata(result.stderr)
        if info.duration <= 0:
            log_warning(f"Could not parse duration for {path.name}; assuming 0s")
        return info

    def detect_silence(
        self,
        path: Path | str,
        threshold_db: float,
        min_duration_sec: float,
    ) -> list[SilenceInterval]:
        """Run the silencedetect filter and return the quiet spans it reports."""
        result = _run_analysis(
            [
                "-i", str(path),
                "-af", f"silencedetect=noise={threshold_db}dB:d={min_duration_sec}",
                "-f", "null", "-",
            ],
            binary=self.binary,
        )
        if result.returncode != 0:
            raise FFmpegError(
                [self.binary, "-i", str(path), "silencedetect"],
                result.returncode,
                result.stderr,
            )
        return parse_silence(result.stderr)

    def extract(
        self,
        path: Path | str,
        start_sec: float,
        duration_sec: float,
        output_path: Path | str,
    ) -> Path:
        """Copy a time range into its own file without re-encoding."""
        run_ffmpeg(
            [
                "-ss", f"{start_sec:.3f}",
                "-i", str(path),
                "-t", f"{duration_sec:.3f}",
                "-c", "copy",
                "-avoid_negative_ts", "make_zero",
                str(output_path),
            ],
            binary=self.binary,
        )
        return Path(output_path)

    def preprocess(
        self,
        path: Path | str,
        target_sample_rate: int,
        target_channels: int,
        output_dir: Path | str,
    ) -> Path:
        """Resample, downmix and normalize loudness for silence detection.

        Best-effort: any failure returns the original path.
        """
        path = Path(path)
        output_path = Path(output_dir) / "preprocessed.m4a"
        try:
            run_ffmpeg(
                [
                    "-i", str(path),
                    "-af", f"aresample={target_sample_rate},dynaudnorm=f=75:g=25:s=10",
                    "-ac", str(target_channels),
                    "-c:a", "aac",
                    "-b:a", "128k",
                    str(output_path),
                ],
                binary=self.binary,
            )
        except DecoderError as e:
            log_warning(f"Audio preprocessing failed, using original: {e}")
            return path

        log_step(
            "Preprocess",
            f"{target_sample_rate}Hz, {target_channels}ch, aac@128k → {output_path.name}",
        )
        return output_path
