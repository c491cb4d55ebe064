from typing import List

from redrive.facade.sqs import SQS
from redrive.message import Message
from redrive.requeue import RunStats
from redrive.requeue.config import RunConfig
from redrive.requeue.shutdown import ShutdownController


class BatchFetcher:
    def __init__(self, sqs: SQS, shutdown: ShutdownController):
        self.sqs = sqs
        self.shutdown = shutdown

    @staticmethod
    def request_size(config: RunConfig, stats: RunStats) -> int:
        remaining = config.budget - stats.sent if config.budget is not None else config.batch_size
        return min(config.batch_size, remaining)

    def next_batch(self, config: RunConfig, stats: RunStats) -> List[Message]:
        """
        Receive up to request_size messages from the source queue.

        The long poll is issued in slices of at most poll_slice seconds so a shutdown request
        is noticed before the full wait elapses. Returns an empty list when nothing arrived.
        """
        size = self.request_size(config, stats)
        if size <= 0:
            return []
        waited = 0
        while True:
            wait = min(config.poll_slice, config.wait_seconds - waited)
            messages = self.sqs.receive(config.source_queue, size, wait, with_attributes=True)
            waited += wait
            if len(messages) > 0 or waited >= config.wait_seconds or self.shutdown.requested:
                return messages
