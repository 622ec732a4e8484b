"""longscribe segment: preview where a recording would be split."""

from __future__ import annotations

import click
from pydantic import ValidationError

from longscribe.errors import LongscribeError
from longscribe.utils.progress import log_error, show_segment_table


@click.command()
@click.argument("audio", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_path", default=None, type=click.Path(exists=True),
              help="YAML config file")
@click.option("--ffmpeg", "ffmpeg_path", default=None, help="Path to the ffmpeg binary")
@click.option("--max-chunk-sec", default=None, type=float, help="Maximum chunk duration")
@click.option("--max-upload-mb", default=None, type=float, help="Maximum upload size per chunk")
@click.option("--keep", is_flag=True, help="Keep extracted segment files and print their paths")
def segment_cmd(
    audio: str,
    config_path: str | None,
    ffmpeg_path: str | None,
    max_chunk_sec: float | None,
    max_upload_mb: float | None,
    keep: bool,
) -> None:
    """Split AUDIO and list the resulting segments without transcribing."""
    from longscribe.pipeline.orchestrator import load_config, resolve_segment_options
    from longscribe.segmentation.segmenter import Segmenter
    from longscribe.utils.ffmpeg import FFmpegDecoder

    try:
        config = load_config(config_path, {
            "ffmpeg_path": ffmpeg_path,
            "segment.max_chunk_duration_sec": max_chunk_sec,
            "segment.max_upload_size_mb": max_upload_mb,
            "segment.preserve_intermediates": True if keep else None,
        })
        decoder = FFmpegDecoder(config.ffmpeg_path)
        segmenter = Segmenter(decoder, temp_root=config.temp_dir)
        options = resolve_segment_options(config, audio, decoder)
        segments = segmenter.segment(audio, options)
    except (LongscribeError, ValidationError) as e:
        log_error(f"Segmentation failed: {e}")
        raise SystemExit(1)

    show_segment_table(segments)
