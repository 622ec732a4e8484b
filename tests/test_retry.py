"""Tests for error classification and the tenacity retry policy."""

import pytest

from longscribe.errors import (
    PermanentTranscriptionError,
    TranscriptionError,
    TransientTranscriptionError,
)
from longscribe.utils.retry import call_with_retry, classify_error


class StatusError(Exception):
    def __init__(self, status_code):
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}")


@pytest.mark.parametrize("status", [500, 502, 503, 408, 429])
def test_retryable_statuses(status):
    err = classify_error(StatusError(status))
    assert isinstance(err, TransientTranscriptionError)
    assert err.status == status


@pytest.mark.parametrize("status", [400, 401, 404, 413])
def test_client_errors_are_permanent(status):
    err = classify_error(StatusError(status))
    assert isinstance(err, PermanentTranscriptionError)
    assert err.status == status


def test_status_read_from_response():
    class ResponseError(Exception):
        response = type("Response", (), {"status_code": 503})()

    assert isinstance(classify_error(ResponseError()), TransientTranscriptionError)


def test_network_errors_are_transient():
    assert isinstance(classify_error(ConnectionResetError()), TransientTranscriptionError)
    assert isinstance(classify_error(TimeoutError()), TransientTranscriptionError)


def test_unknown_errors_are_neither_transient_nor_permanent():
    original = ValueError("bad payload")
    err = classify_error(original)
    assert type(err) is TranscriptionError
    assert err.status is None
    assert err.__cause__ is original


def test_classified_errors_pass_through():
    err = TransientTranscriptionError("already classified")
    assert classify_error(err) is err


def test_retry_until_success():
    sleeps = []
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert call_with_retry(flaky, sleep=sleeps.append) == "ok"
    assert sleeps == [pytest.approx(0.5), pytest.approx(1.0)]


def test_gives_up_after_max_attempts():
    calls = []

    def always_down():
        calls.append(1)
        raise StatusError(503)

    with pytest.raises(TransientTranscriptionError):
        call_with_retry(always_down, max_attempts=3, sleep=lambda s: None)
    assert len(calls) == 3


def test_permanent_error_not_retried():
    calls = []

    def rejected():
        calls.append(1)
        raise StatusError(400)

    with pytest.raises(PermanentTranscriptionError):
        call_with_retry(rejected, sleep=lambda s: None)
    assert len(calls) == 1


def test_backoff_is_capped():
    sleeps = []

    def always_down():
        raise TimeoutError()

    with pytest.raises(TransientTranscriptionError):
        call_with_retry(always_down, max_attempts=5, initial=1.0, maximum=3.0,
                        sleep=sleeps.append)
    assert sleeps == [1.0, 2.0, 3.0, 3.0]


def test_unknown_error_not_retried_in_place():
    calls = []

    def crashes():
        calls.append(1)
        raise RuntimeError("decoder hiccup")

    with pytest.raises(TranscriptionError, match="decoder hiccup"):
        call_with_retry(crashes, sleep=lambda s: None)
    assert len(calls) == 1
