from typing import List, Tuple, Optional

from redrive.message import Message, Sent
from redrive.requeue import RunStats
from redrive.requeue.cleanup import DeleteReport
from redrive.requeue.engine import Outcome


def update(stats: RunStats, outcomes: List[Tuple[Message, Outcome]], deletions: DeleteReport) -> RunStats:
    sent = sum(1 for _, outcome in outcomes if isinstance(outcome, Sent))
    return stats._replace(
        received=stats.received + len(outcomes),
        sent=stats.sent + sent,
        failed=stats.failed + len(outcomes) - sent,
        batches_processed=stats.batches_processed + 1,
        deleted=stats.deleted + deletions.deleted,
        delete_failed=stats.delete_failed + len(deletions.failed),
    )


def percent_complete(stats: RunStats, budget: Optional[int]) -> Optional[float]:
    if budget is None:
        return None
    return round(stats.sent / budget * 100, 2)


def report(stats: RunStats, budget: Optional[int]) -> str:
    if budget is None:
        return f'Total processed so far: {stats.sent} messages'
    return f'Progress: {stats.sent}/{budget} messages processed ({percent_complete(stats, budget)}%)'


def summary(stats: RunStats):
    yield 'Total statistics:'
    yield f'- Messages received from DLQ: {stats.received}'
    yield f'- Messages successfully sent to destination: {stats.sent}'
    yield f'- Messages failed to process: {stats.failed}'
    yield f'- Batches processed: {stats.batches_processed}'
    yield f'- Messages deleted from DLQ: {stats.deleted}'
    yield f'- Messages failed to delete: {stats.delete_failed}'
