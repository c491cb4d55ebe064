import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple, NamedTuple, Callable

from redrive.errors import RemoteServiceError
from redrive.facade.sqs import SQS, MAX_BATCH
from redrive.log import RunLog
from redrive.message import Message, Sent
from redrive.requeue.engine import Outcome


class DeleteReport(NamedTuple):
    deleted: int = 0
    failed: Tuple[Tuple[str, str], ...] = ()


class CleanupCoordinator:
    """
    Deletes successfully republished messages from the source queue.

    A message that was sent but could not be deleted stays in the source queue and will be
    republished again by a later run. That duplicate is accepted: keeping the source copy never
    loses data, so delete failures are logged and never stop the run.
    """

    def __init__(self, sqs: SQS, log: RunLog, attempts: int = 3, retry_pause: float = 5,
                 max_workers: int = 1, sleep: Callable[[float], None] = time.sleep):
        self.sqs = sqs
        self.log = log
        self.attempts = attempts
        self.retry_pause = retry_pause
        self.max_workers = max_workers
        self.sleep = sleep

    def delete_eligible(self, outcomes: List[Tuple[Message, Outcome]], source_queue: str,
                        delete_after_send: bool) -> DeleteReport:
        if not delete_after_send:
            return DeleteReport()
        eligible = [message for message, outcome in outcomes if isinstance(outcome, Sent)]
        if len(eligible) == 0:
            return DeleteReport()
        chunks = [eligible[index:index + MAX_BATCH] for index in range(0, len(eligible), MAX_BATCH)]
        if self.max_workers <= 1 or len(chunks) <= 1:
            reports = [self.delete_chunk(chunk, source_queue) for chunk in chunks]
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(chunks))) as executor:
                reports = list(executor.map(lambda chunk: self.delete_chunk(chunk, source_queue), chunks))
        return DeleteReport(
            deleted=sum(report.deleted for report in reports),
            failed=tuple(failure for report in reports for failure in report.failed),
        )

    def delete_chunk(self, chunk: List[Message], source_queue: str) -> DeleteReport:
        entries = [(str(index), message.receipt_handle) for index, message in enumerate(chunk)]
        attempt = 1
        while True:
            try:
                result = self.sqs.delete_batch(source_queue, entries)
                break
            except RemoteServiceError as ex:
                if attempt >= self.attempts:
                    self.log.error(
                        f'Failed to delete {len(chunk)} messages from {source_queue} after {attempt} attempts: '
                        f'{ex.reason}. They remain in the source queue and may be delivered again.'
                    )
                    return DeleteReport(failed=tuple((message.id, ex.reason) for message in chunk))
                self.log.error(f'Failed to delete messages from {source_queue}: {ex.reason}. Retrying.')
                attempt += 1
                self.sleep(self.retry_pause)
        failed = tuple((chunk[int(ident)].id, reason) for ident, reason in result.failed)
        if len(failed) > 0:
            details = ', '.join(f'{message_id}: {reason}' for message_id, reason in failed)
            self.log.warn(
                f'Some messages failed to delete from {source_queue} and may be delivered again: {details}'
            )
        else:
            self.log.info(f'Successfully deleted {len(result.successful)} messages from DLQ')
        return DeleteReport(deleted=len(result.successful), failed=failed)
