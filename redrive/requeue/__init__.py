from typing import NamedTuple, Optional

REASON_BUDGET = 'budget'
REASON_DRAINED = 'drained'
REASON_IDLE = 'idle'
REASON_SHUTDOWN = 'shutdown'


class RunStats(NamedTuple):
    received: int = 0
    sent: int = 0
    failed: int = 0
    batches_processed: int = 0
    deleted: int = 0
    delete_failed: int = 0


class RunResult(NamedTuple):
    stats: RunStats
    reason: Optional[str]
