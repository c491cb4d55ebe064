import time
from typing import Callable, List, Tuple, Optional

from redrive.errors import RemoteServiceError
from redrive.facade.sqs import SQS
from redrive.log import RunLog
from redrive.message import Message, Sent
from redrive.requeue import RunStats, RunResult, REASON_BUDGET, REASON_DRAINED, REASON_IDLE, REASON_SHUTDOWN
from redrive.requeue import progress
from redrive.requeue.cleanup import CleanupCoordinator, DeleteReport
from redrive.requeue.config import RunConfig
from redrive.requeue.engine import RequeueEngine, Outcome
from redrive.requeue.fetcher import BatchFetcher
from redrive.requeue.shutdown import ShutdownController

IDLE = 'IDLE'
POLLING = 'POLLING'
PROCESSING = 'PROCESSING'
CLEANING = 'CLEANING'
REPORTING = 'REPORTING'
TERMINATED = 'TERMINATED'

EMPTY_POLL_PAUSE = 1


class RequeueRun:
    """
    Drains the source queue into the destination queue one batch at a time.

    IDLE -> POLLING -> PROCESSING -> CLEANING -> REPORTING -> POLLING, until the budget is reached,
    the source is drained, the idle timeout passes or a shutdown is requested.
    A batch is always cleaned and reported before the next poll.
    """

    def __init__(self, config: RunConfig, sqs: SQS, shutdown: ShutdownController, log: RunLog,
                 clock: Callable[[], float] = time.monotonic, sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.shutdown = shutdown
        self.log = log
        self.clock = clock
        self.fetcher = BatchFetcher(sqs=sqs, shutdown=shutdown)
        self.engine = RequeueEngine(sqs=sqs, log=log, max_workers=config.workers)
        self.cleanup = CleanupCoordinator(
            sqs=sqs, log=log, attempts=config.delete_attempts, retry_pause=config.retry_pause,
            max_workers=config.workers, sleep=sleep
        )
        self.state = IDLE
        self.reason: Optional[str] = None
        self._idle_since: Optional[float] = None

    def run(self) -> RunResult:
        stats = RunStats()
        batch: List[Message] = []
        outcomes: List[Tuple[Message, Outcome]] = []
        deletions = DeleteReport()
        self.state = POLLING
        self.log.info('Starting message processing loop')
        while self.state != TERMINATED:
            try:
                if self.state == POLLING:
                    batch = self._poll(stats)
                elif self.state == PROCESSING:
                    outcomes = self.engine.republish_batch(
                        batch, self.config.destination_queue, self.config.delay_seconds
                    )
                    self.state = CLEANING
                elif self.state == CLEANING:
                    deletions = self._clean(outcomes)
                    self.state = REPORTING
                elif self.state == REPORTING:
                    stats = progress.update(stats, outcomes, deletions)
                    self.log.info(progress.report(stats, self.config.budget))
                    if self.shutdown.requested:
                        self._terminate(REASON_SHUTDOWN)
                    else:
                        self.state = POLLING
            except Exception as ex:
                # A batch interrupted before its sends completed is not counted
                self.log.exception(f'Unexpected error while {self.state.lower()}', ex)
                self.state = POLLING
                self.shutdown.pause(self.config.retry_pause)
        self.log.info('DLQ retry process completed')
        for line in progress.summary(stats):
            self.log.info(line)
        return RunResult(stats=stats, reason=self.reason)

    def _clean(self, outcomes: List[Tuple[Message, Outcome]]) -> DeleteReport:
        """Sent messages are counted even when cleanup breaks; they stay in the source queue"""
        try:
            return self.cleanup.delete_eligible(outcomes, self.config.source_queue, self.config.delete_after_send)
        except Exception as ex:
            self.log.exception('Unexpected error while cleaning, sent messages remain in the DLQ', ex)
            if not self.config.delete_after_send:
                return DeleteReport()
            return DeleteReport(failed=tuple(
                (message.id, str(ex)) for message, outcome in outcomes if isinstance(outcome, Sent)
            ))

    def _terminate(self, reason: str):
        self.reason = reason
        self.state = TERMINATED

    def _poll(self, stats: RunStats) -> List[Message]:
        if self.shutdown.requested:
            self.log.info('Shutdown requested, stopping before the next batch')
            self._terminate(REASON_SHUTDOWN)
            return []
        if self.fetcher.request_size(self.config, stats) <= 0:
            self.log.info(f'Reached maximum number of messages to process ({self.config.budget})')
            self._terminate(REASON_BUDGET)
            return []
        started = self.clock()
        try:
            batch = self.fetcher.next_batch(self.config, stats)
        except RemoteServiceError as ex:
            self.log.error(f'SQS service error: {ex}')
            self.shutdown.pause(self.config.retry_pause)
            return []
        if len(batch) > 0:
            self._idle_since = None
            self.log.info(f'Received {len(batch)} messages from DLQ (batch {stats.batches_processed + 1})')
            self.state = PROCESSING
            return batch
        self.log.info('No messages received from DLQ')
        if self.shutdown.requested:
            self._terminate(REASON_SHUTDOWN)
        elif self.config.budget is not None:
            self.log.info('No more messages available in DLQ')
            self._terminate(REASON_DRAINED)
        else:
            if self._idle_since is None:
                self._idle_since = started
            idle = self.clock() - self._idle_since
            if 0 < self.config.idle_timeout <= idle:
                self.log.info(f'No messages received for {int(idle)} seconds, giving up')
                self._terminate(REASON_IDLE)
            else:
                self.shutdown.pause(EMPTY_POLL_PAUSE)
        return []
