"""longscribe: chunked transcription for long-form audio."""

__version__ = "0.1.0"
