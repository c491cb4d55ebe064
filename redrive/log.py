import traceback
from datetime import datetime
from typing import Callable


class RunLog:
    """
    Formats log lines with a timestamp, a severity and a label.

    Lines are written through the print callable so tests can capture them.
    """

    def __init__(self, label: str, print: Callable = print, now: Callable[[], datetime] = datetime.now):
        self.label = label
        self.print = print
        self.now = now

    def __call__(self, msg):
        self.info(msg)

    def _write(self, severity: str, msg):
        when = self.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        self.print(f'[{when}] [{severity}] [{self.label}] {msg}')

    def info(self, msg):
        self._write('INFO', msg)

    def warn(self, msg):
        self._write('WARN', msg)

    def error(self, msg):
        self._write('ERROR', msg)

    def exception(self, msg, ex: BaseException):
        self._write('ERROR', f'{msg}: {ex}')
        for line in traceback.format_exception(type(ex), ex, ex.__traceback__):
            self._write('ERROR', line.rstrip())
