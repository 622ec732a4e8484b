"""longscribe transcribe: run the full chunked transcription pipeline."""

from __future__ import annotations

from pathlib import Path

import click
from pydantic import ValidationError

from longscribe.errors import LongscribeError
from longscribe.utils.io import write_json
from longscribe.utils.progress import log_error, log_success


@click.command()
@click.argument("audio", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_path", default=None, type=click.Path(exists=True),
              help="YAML config file")
@click.option(
    "--output", "-o",
    default=None,
    type=click.Path(),
    help="Transcript JSON path (default: AUDIO with .json suffix)",
)
@click.option("--ffmpeg", "ffmpeg_path", default=None, help="Path to the ffmpeg binary")
@click.option("--max-chunk-sec", default=None, type=float, help="Maximum chunk duration")
@click.option("--max-upload-mb", default=None, type=float, help="Maximum upload size per chunk")
@click.option("--no-preprocess", is_flag=True, help="Skip resample/normalize before analysis")
@click.option("--no-chunking", is_flag=True, help="Send the whole recording in one request")
@click.option("--preserve-intermediates", is_flag=True, help="Keep segment files on disk")
@click.option("--language", default=None, help="Language code, e.g. 'en' (default: detect)")
@click.option("--model", default=None, help="faster-whisper model name")
@click.option("--device", default=None, type=click.Choice(["cpu", "cuda", "auto"]),
              help="Inference device")
@click.option("--diarize", is_flag=True, help="Label speakers with pyannote (needs HF_TOKEN)")
@click.option("--speakers", default=None, type=int, help="Expected number of speakers")
@click.option("--timeout", default=None, type=float, help="Overall pipeline timeout in seconds")
def transcribe_cmd(
    audio: str,
    config_path: str | None,
    output: str | None,
    ffmpeg_path: str | None,
    max_chunk_sec: float | None,
    max_upload_mb: float | None,
    no_preprocess: bool,
    no_chunking: bool,
    preserve_intermediates: bool,
    language: str | None,
    model: str | None,
    device: str | None,
    diarize: bool,
    speakers: int | None,
    timeout: float | None,
) -> None:
    """Transcribe AUDIO and write the merged transcript as JSON."""
    from longscribe.pipeline.orchestrator import TranscriptionPipeline, load_config
    from longscribe.segmentation.cache import SegmentationCache
    from longscribe.transcription.whisper import WhisperTranscriber

    # Flags only override the file when given.
    overrides = {
        "ffmpeg_path": ffmpeg_path,
        "pipeline_timeout_sec": timeout,
        "segment.max_chunk_duration_sec": max_chunk_sec,
        "segment.max_upload_size_mb": max_upload_mb,
        "segment.enable_preprocessing": False if no_preprocess else None,
        "segment.preserve_intermediates": True if preserve_intermediates else None,
        "enable_chunking": False if no_chunking else None,
        "transcription.language": language,
        "transcription.model": model,
        "transcription.device": device,
        "diarization.enabled": True if diarize else None,
        "diarization.num_speakers": speakers,
    }

    try:
        config = load_config(config_path, overrides)
        pipeline = TranscriptionPipeline(
            WhisperTranscriber(config.transcription),
            config=config,
            cache=SegmentationCache(),
        )
        transcript = pipeline.run(audio)
    except (LongscribeError, ValidationError) as e:
        log_error(f"Transcription failed: {e}")
        raise SystemExit(1)
    except ImportError as e:
        log_error(str(e))
        raise SystemExit(1)

    out_path = Path(output) if output else Path(audio).with_suffix(".json")
    write_json(out_path, transcript.model_dump(mode="json"))
    log_success(f"Transcript written: {out_path}")
