"""Bounded waits for a single sequential batch.

Every pause in a run goes through ``Pacer.sleep`` so that waits are named,
carry an explicit millisecond budget, and honour the run's cancel token.
"""

import threading
import time
from typing import Optional

from errors import RunCancelled


class CancelToken:
    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        return self._event.wait(seconds)


class Pacer:
    def __init__(self, token: Optional[CancelToken] = None):
        self.token = token or CancelToken()

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def check(self, label: str = "") -> None:
        if self.token.cancelled:
            raise RunCancelled(f"cancelled at {label or 'checkpoint'}")

    def sleep(self, ms: float, label: str = "") -> None:
        self.check(label)
        if ms > 0 and self.token.wait(ms / 1000.0):
            raise RunCancelled(f"cancelled during {label or 'wait'}")

