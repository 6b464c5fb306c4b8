import threading
from typing import Optional

from .commands import CommandResult
from .errors import CompletionTimeoutError


class CompletionHandle:
    """One-shot slot the dispatcher fills with the result of a command.

    The submitting thread blocks in wait() until the dispatcher calls
    signal(). Only the first signal counts.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._result: Optional[CommandResult] = None

    def signal(self, result: CommandResult) -> bool:
        with self._lock:
            if self._event.is_set():
                return False
            self._result = result
            self._event.set()
            return True

    def wait(self, timeout: Optional[float] = None) -> CommandResult:
        if not self._event.wait(timeout):
            raise CompletionTimeoutError(f"No result after {timeout}s")
        return self._result

    @property
    def done(self) -> bool:
        return self._event.is_set()
