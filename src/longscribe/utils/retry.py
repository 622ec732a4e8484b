"""Retry policies for provider calls using tenacity."""

from __future__ import annotations

import time
from typing import Callable, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from longscribe.errors import (
    PermanentTranscriptionError,
    TranscriptionError,
    TransientTranscriptionError,
)
from longscribe.utils.progress import log_warning

T = TypeVar("T")

# Client-side statuses that still mean "try again later".
RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


def _status_of(exc: BaseException) -> int | None:
    for attr in ("status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    value = getattr(response, "status_code", None) or getattr(response, "status", None)
    return value if isinstance(value, int) else None


def classify_error(exc: BaseException) -> TranscriptionError:
    """Map an arbitrary provider exception onto the transcription error classes.

    Only HTTP 4xx (other than 408 and 429) is permanent. Errors with no
    status that are not network failures become a plain TranscriptionError.
    """
    if isinstance(exc, TranscriptionError):
        return exc

    status = _status_of(exc)
    if status is not None:
        if status >= 500 or status in RETRYABLE_CLIENT_STATUSES:
            err: TranscriptionError = TransientTranscriptionError(
                f"Provider error ({status}): {exc}", status=status,
            )
        else:
            err = PermanentTranscriptionError(
                f"Provider rejected request ({status}): {exc}", status=status,
            )
    elif isinstance(exc, (TimeoutError, ConnectionError, OSError)):
        err = TransientTranscriptionError(f"Network error: {exc}")
    else:
        # Not retried in place, but still eligible for the sequential repair pass.
        err = TranscriptionError(f"Transcription failed: {exc}")

    err.__cause__ = exc
    return err


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
    status = getattr(exc, "status", None)
    log_warning(
        f"Transient error (attempt {retry_state.attempt_number}"
        f"{f', status {status}' if status else ''}), retrying in {wait:.1f}s: {exc}"
    )


def retry_transcription(
    max_attempts: int = 3,
    *,
    initial: float = 0.5,
    maximum: float = 8.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """Retry controller for one transcription attempt with exponential backoff.

    Only transient errors are retried; permanent errors re-raise at once.
    """
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=initial, min=initial, max=maximum),
        retry=retry_if_exception_type(TransientTranscriptionError),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=True,
    )


def call_with_retry(
    fn: Callable[..., T],
    *args,
    max_attempts: int = 3,
    initial: float = 0.5,
    maximum: float = 8.0,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """Call fn, classifying its failures and retrying the transient ones."""

    def attempt() -> T:
        try:
            return fn(*args, **kwargs)
        except TranscriptionError:
            raise
        except Exception as e:
            raise classify_error(e) from e

    retrying = retry_transcription(
        max_attempts, initial=initial, maximum=maximum, sleep=sleep,
    )
    return retrying(attempt)
