"""Batch scheduler: bounded-concurrency transcription with a repair pass."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable

from longscribe.errors import (
    ChunkRetryExhausted,
    PermanentTranscriptionError,
    PipelineTimeout,
    TranscriptionError,
)
from longscribe.models.audio import AudioSegment
from longscribe.models.config import SchedulerConfig
from longscribe.models.transcript import ChunkResult
from longscribe.utils.progress import log_step, log_warning
from longscribe.utils.retry import call_with_retry

TranscribeFunc = Callable[[AudioSegment], ChunkResult]


def batch_size_for(segment_count: int) -> int:
    """Concurrency width for a run of segment_count segments."""
    if segment_count > 100:
        return 15
    if segment_count > 50:
        return 12
    return 10


def batch_delay(batch_size: int, config: SchedulerConfig) -> float:
    """Pause between batches, in seconds."""
    return max(config.min_batch_delay_sec, batch_size * config.per_item_delay_sec)


def recover_text(result: ChunkResult, segment_index: int | None = None) -> tuple[ChunkResult, bool]:
    """Rebuild empty top-level text from sub-segment text.

    Best-effort salvage for providers that return structured segments but an
    empty text field. Returns the (possibly new) result and whether it fired.
    """
    if not result.is_empty:
        return result, False

    parts = [seg.text.strip() for seg in result.segments if seg.text and seg.text.strip()]
    if not parts:
        return result, False

    recovered = " ".join(parts)
    where = f"segment {segment_index}" if segment_index is not None else "chunk"
    log_warning(
        f"Recovered empty text for {where} from {len(parts)}/{len(result.segments)} "
        f"sub-segments: {recovered[:80]!r}"
    )
    return result.model_copy(update={"text": recovered}), True


@dataclass
class ChunkOutcome:
    """Result or error for one segment of a batch."""

    index: int
    result: ChunkResult | None = None
    error: TranscriptionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RunStats:
    """Counters describing a scheduler run."""

    batches: int = 0
    repaired: int = 0
    recovered: int = 0
    failed_first_pass: list[int] = field(default_factory=list)


def run_concurrent_phase(
    batch: list[AudioSegment],
    attempt: TranscribeFunc,
    width: int,
) -> list[ChunkOutcome]:
    """Run every item of a batch concurrently and settle all of them.

    Failures are captured per item; nothing is cancelled when one fails.
    """

    def guarded(segment: AudioSegment) -> ChunkOutcome:
        try:
            return ChunkOutcome(segment.index, result=attempt(segment))
        except TranscriptionError as e:
            return ChunkOutcome(segment.index, error=e)

    with ThreadPoolExecutor(max_workers=max(1, min(width, len(batch)))) as pool:
        return list(pool.map(guarded, batch))


def run_repair_phase(
    failed: list[AudioSegment],
    attempt: TranscribeFunc,
    *,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> list[ChunkOutcome]:
    """Retry failed items once each, one at a time, after a fixed delay.

    Raises ChunkRetryExhausted naming the first item that fails again.
    """
    repaired: list[ChunkOutcome] = []
    for segment in failed:
        sleep(delay)
        log_step("Retry", f"Sequential retry for segment {segment.describe()}")
        try:
            result = attempt(segment)
        except TranscriptionError as e:
            raise ChunkRetryExhausted(
                segment.index, segment.start_sec, segment.end_sec, e,
            ) from e
        repaired.append(ChunkOutcome(segment.index, result=result))
    return repaired


class BatchScheduler:
    """Transcribes segments in sequential batches of concurrent work.

    Output is always ordered by segment index, whatever the completion
    order or the number of retries an item needed.
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SchedulerConfig()
        self.sleep = sleep
        self.clock = clock
        self.stats = RunStats()

    def _attempt(self, transcribe_one: TranscribeFunc) -> TranscribeFunc:
        def attempt(segment: AudioSegment) -> ChunkResult:
            return call_with_retry(
                transcribe_one,
                segment,
                max_attempts=self.config.attempt_retries,
                initial=self.config.backoff_initial_sec,
                maximum=self.config.backoff_max_sec,
                sleep=self.sleep,
            )
        return attempt

    def run(
        self,
        segments: list[AudioSegment],
        transcribe_one: TranscribeFunc,
        *,
        deadline: float | None = None,
    ) -> list[ChunkResult]:
        """Transcribe all segments and return results in segment order."""
        self.stats = RunStats()
        if not segments:
            return []

        width = batch_size_for(len(segments))
        batches = [segments[i:i + width] for i in range(0, len(segments), width)]
        attempt = self._attempt(transcribe_one)
        results: dict[int, ChunkResult] = {}
        positions = {s.index: pos for pos, s in enumerate(segments)}

        log_step(
            "Transcribe",
            f"{len(segments)} segments in {len(batches)} batch(es) of up to {width}",
        )

        for number, batch in enumerate(batches, start=1):
            if deadline is not None and self.clock() > deadline:
                raise PipelineTimeout(
                    f"Pipeline timed out before batch {number}/{len(batches)}"
                )

            log_step("Transcribe", f"Batch {number}/{len(batches)} ({len(batch)} segments)")
            outcomes = run_concurrent_phase(batch, attempt, width)
            self.stats.batches += 1

            failed = [o for o in outcomes if not o.ok]
            for outcome in outcomes:
                if outcome.ok:
                    results[outcome.index] = outcome.result

            if failed:
                self._raise_permanent(failed)
                self.stats.failed_first_pass.extend(o.index for o in failed)
                log_warning(
                    f"{len(failed)} segment(s) failed in batch {number}: "
                    + ", ".join(str(o.index) for o in failed)
                )
                by_index = {s.index: s for s in batch}
                repaired = run_repair_phase(
                    [by_index[o.index] for o in failed],
                    attempt,
                    delay=self.config.repair_delay_sec,
                    sleep=self.sleep,
                )
                for outcome in repaired:
                    results[outcome.index] = outcome.result
                self.stats.repaired += len(repaired)

            if number < len(batches):
                self.sleep(batch_delay(width, self.config))

        ordered = sorted(results.items(), key=lambda item: positions[item[0]])
        final: list[ChunkResult] = []
        for index, result in ordered:
            result, fired = recover_text(result, index)
            self.stats.recovered += int(fired)
            final.append(result)
        return final

    def _raise_permanent(self, failed: list[ChunkOutcome]) -> None:
        for outcome in failed:
            if isinstance(outcome.error, PermanentTranscriptionError):
                outcome.error.segment_index = outcome.index
                raise outcome.error
