"""
Mutation Gate Module

A single process-wide serialization point for mutating operations. The gate
is a busy flag, not a queue: a second caller arriving while it is held is
turned away immediately and has to resubmit.
"""

from contextlib import contextmanager
from typing import Iterator
import threading

from .exceptions import LedgerBusy
from .logging_config import get_logger


logger = get_logger("guild_bank.gate")


class MutationGate:
    """Non-blocking single-holder lock around deposit, withdraw, loan, repay and accrue"""

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        """Take the gate if it is free; never waits"""
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @contextmanager
    def hold(self, operation: str = "mutation") -> Iterator[None]:
        """
        Hold the gate for the duration of the block.

        Raises:
            LedgerBusy: if another operation already holds the gate
        """
        if not self.try_acquire():
            logger.debug("Gate busy, rejecting %s", operation)
            raise LedgerBusy()
        try:
            yield
        finally:
            self.release()
