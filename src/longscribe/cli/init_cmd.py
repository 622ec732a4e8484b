"""longscribe init: write a default configuration file."""

from __future__ import annotations

from pathlib import Path

import click

from longscribe.models.config import PipelineConfig
from longscribe.utils.io import write_yaml
from longscribe.utils.progress import log_error, log_success


@click.command()
@click.option(
    "--output", "-o",
    default="longscribe.yaml",
    type=click.Path(),
    help="Where to write the config file",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init_cmd(output: str, force: bool) -> None:
    """Write a config file holding every option at its default."""
    path = Path(output).resolve()
    if path.exists() and not force:
        log_error(f"Config already exists: {path} (use --force to overwrite)")
        raise SystemExit(1)

    write_yaml(path, PipelineConfig().model_dump(mode="json"))
    log_success(f"Config written: {path}")
    click.echo(f"\nNext: longscribe transcribe AUDIO --config {output}")
