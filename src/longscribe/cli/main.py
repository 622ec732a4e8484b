"""Root CLI group for longscribe."""

from __future__ import annotations

import click

from longscribe import __version__


@click.group()
@click.version_option(version=__version__, prog_name="longscribe")
def cli() -> None:
    """longscribe: transcribe long recordings in speech-aligned chunks."""


# Import and register subcommands
from longscribe.cli.init_cmd import init_cmd  # noqa: E402
from longscribe.cli.probe_cmd import probe_cmd  # noqa: E402
from longscribe.cli.segment_cmd import segment_cmd  # noqa: E402
from longscribe.cli.transcribe_cmd import transcribe_cmd  # noqa: E402

cli.add_command(init_cmd, "init")
cli.add_command(probe_cmd, "probe")
cli.add_command(segment_cmd, "segment")
cli.add_command(transcribe_cmd, "transcribe")
