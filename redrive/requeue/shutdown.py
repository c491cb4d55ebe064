import signal
import threading
from typing import Callable, Optional, Tuple


class ShutdownController:
    """
    Cooperative cancellation token.

    The run loop checks `requested` between states; pauses wait on the same event so a
    shutdown request ends them early.
    """

    def __init__(self, log: Callable = print):
        self.log = log
        self.reason: Optional[str] = None
        self._event = threading.Event()

    @property
    def requested(self) -> bool:
        return self._event.is_set()

    def request(self, reason: str = 'requested'):
        if self._event.is_set():
            self.log(f'Shutdown already in progress ({self.reason})')
            return
        self.reason = reason
        self._event.set()

    def pause(self, seconds: float) -> bool:
        """Sleep for up to seconds, returning True when shutdown was requested"""
        return self._event.wait(seconds)

    def install(self, signals: Tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)) -> Callable[[], None]:
        previous = {}

        def handler(signum, _frame):
            name = signal.Signals(signum).name
            self.log(f'Received {name} signal. Shutting down gracefully...')
            self.request(name)

        for signum in signals:
            previous[signum] = signal.signal(signum, handler)

        def restore():
            for _signum, _handler in previous.items():
                signal.signal(_signum, _handler)

        return restore
