"""Operation-scoped execution lock.

One lock per fund. Mutating operations hold it exclusively; read-only
queries hold it shared. A thread that already holds the lock (in either
mode) and asks for it again is rejected instead of deadlocking, which is
how a collaborator calling back into the fund mid-operation is caught.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from basketfund.errors import ReentrancyError


class ExecutionLock:
    """Writer-exclusive / reader-shared lock with same-thread re-entry detection."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._writer: Optional[int] = None
        self._writer_operation: Optional[str] = None
        self._readers: dict[int, int] = {}

    @property
    def locked(self) -> bool:
        with self._cond:
            return self._writer is not None

    @property
    def current_operation(self) -> Optional[str]:
        return self._writer_operation

    @contextmanager
    def exclusive(self, operation: str) -> Iterator[None]:
        """Hold the lock for a mutating operation.

        Raises:
            ReentrancyError: If the calling thread already holds the lock
        """
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                raise ReentrancyError(f"{operation} rejected: {self._writer_operation} is already running")
            if me in self._readers:
                raise ReentrancyError(f"{operation} rejected: called from inside a read-only query")
            while self._writer is not None or self._readers:
                self._cond.wait()
            self._writer = me
            self._writer_operation = operation
        try:
            yield
        finally:
            with self._cond:
                self._writer = None
                self._writer_operation = None
                self._cond.notify_all()

    @contextmanager
    def shared(self, query: str) -> Iterator[None]:
        """Hold the lock for a read-only query.

        Raises:
            ReentrancyError: If the calling thread is inside a mutating operation
        """
        me = threading.get_ident()
        with self._cond:
            if self._writer == me:
                raise ReentrancyError(f"{query} rejected: {self._writer_operation} is in flight")
            while self._writer is not None:
                self._cond.wait()
            self._readers[me] = self._readers.get(me, 0) + 1
        try:
            yield
        finally:
            with self._cond:
                remaining = self._readers[me] - 1
                if remaining:
                    self._readers[me] = remaining
                else:
                    del self._readers[me]
                if not self._readers:
                    self._cond.notify_all()
