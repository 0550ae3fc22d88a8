from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterator, Protocol, Sequence, TypeVar

from app.schemas.screening import CandidateVerdict, ScreeningCriteria
from app.screening.aggregator import ResultAggregator
from app.screening.analyzer import failure_verdict
from app.screening.intake import Document
from app.screening.state import RunState, RunStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 5
DEFAULT_GRACE_PERIOD_S = 0.8


class Analyzer(Protocol):
    async def analyze(self, document: Document, criteria: ScreeningCriteria) -> CandidateVerdict: ...


def iter_batches(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size < 1:
        raise ValueError("batch size must be at least 1")
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BatchScheduler:
    """Runs a queue through the analyzer in fixed-size concurrent batches.

    Batch N+1 is dispatched only after every item of batch N has resolved.
    The abort flag is read before each batch; items already in flight finish.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        grace_period_s: float = DEFAULT_GRACE_PERIOD_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch size must be at least 1")
        self._analyzer = analyzer
        self._batch_size = batch_size
        self._grace_period_s = max(0.0, grace_period_s)
        self._sleep = sleep

    @property
    def batch_size(self) -> int:
        return self._batch_size

    async def _process(self, document: Document, criteria: ScreeningCriteria, aggregator: ResultAggregator) -> None:
        aggregator.record_started(document)
        try:
            verdict = await self._analyzer.analyze(document, criteria)
        except Exception as exc:  # noqa: BLE001 - one failed item must not stop the batch
            logger.error("screening_item_failed file=%s: %s", document.filename, exc, exc_info=True)
            verdict = failure_verdict()
        aggregator.record(document, verdict)

    async def run(self, state: RunState, aggregator: ResultAggregator | None = None) -> RunStatus:
        aggregator = aggregator or ResultAggregator(state)
        criteria = state.criteria
        state.mark_running()
        logger.info(
            "screening_run_started run_id=%s total=%s batch_size=%s",
            state.run_id,
            state.total,
            self._batch_size,
        )

        try:
            for index, batch in enumerate(iter_batches(state.queue, self._batch_size), start=1):
                if state.abort_requested:
                    logger.info("screening_run_abort_checkpoint run_id=%s batch=%s", state.run_id, index)
                    break
                await asyncio.gather(*(self._process(document, criteria, aggregator) for document in batch))

            if state.abort_requested:
                state.finish(RunStatus.ABORTED)
            else:
                await self._sleep(self._grace_period_s)
                state.finish(RunStatus.COMPLETED)
        except asyncio.CancelledError:
            state.request_abort()
            state.finish(RunStatus.ABORTED)
            raise

        logger.info(
            "screening_run_finished run_id=%s status=%s processed=%s total=%s",
            state.run_id,
            state.status.value,
            state.processed,
            state.total,
        )
        return state.status
