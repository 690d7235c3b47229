"""Reader/writer lock shared by the peer registry."""

import threading
from contextlib import contextmanager


class RWLock:
    """
    Multiple readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue
    behind it so a steady stream of snapshots cannot starve the sweeper.
    Critical sections guarded by this lock must never await.

    In the daemon it is only taken on the event loop thread. Never hold it
    from a worker thread: a loop-side acquire would block the whole loop.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
