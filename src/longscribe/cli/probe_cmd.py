"""longscribe probe: show what the decoder sees in a recording."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from longscribe.errors import DecoderError
from longscribe.utils.ffmpeg import FFmpegDecoder
from longscribe.utils.progress import format_seconds, log_error

console = Console()


@click.command()
@click.argument("audio", type=click.Path(exists=True, dir_okay=False))
@click.option("--ffmpeg", "ffmpeg_path", default=None, help="Path to the ffmpeg binary")
def probe_cmd(audio: str, ffmpeg_path: str | None) -> None:
    """Print duration, sample rate, channels and codec of AUDIO."""
    decoder = FFmpegDecoder(ffmpeg_path)
    if not decoder.probe():
        log_error("FFmpeg not found. Install it or pass --ffmpeg.")
        raise SystemExit(1)

    try:
        info = decoder.metadata(audio)
    except DecoderError as e:
        log_error(f"Could not read metadata: {e}")
        raise SystemExit(1)

    table = Table(title=audio, show_header=False)
    table.add_column(style="bold")
    table.add_column()
    table.add_row("Decoder", decoder.binary)
    table.add_row("Duration", f"{format_seconds(info.duration)} ({info.duration:.2f}s)")
    table.add_row("Sample rate", f"{info.sample_rate} Hz")
    table.add_row("Channels", str(info.channels))
    table.add_row("Codec", info.codec)
    table.add_row(
        "Bitrate",
        f"{info.bit_rate_kbps} kb/s" if info.bit_rate_kbps is not None else "—",
    )
    console.print(table)
