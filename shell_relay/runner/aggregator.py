"""Funnel a process's output streams into a single delivery queue."""

from __future__ import annotations

import logging
import select
import threading
from collections.abc import Callable
from dataclasses import dataclass
from queue import Full, Queue
from typing import IO, Union

from shell_relay.runner.process import ProcessOutcome, RunningProcess

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_QUEUE_SIZE",
    "OutputAggregator",
    "OutputChunk",
    "ProcessFinished",
    "ReaderFinished",
    "RelayEvent",
]

DEFAULT_CHUNK_SIZE = 4096
DEFAULT_QUEUE_SIZE = 100
POLL_INTERVAL = 0.05

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OutputChunk:
    """Bytes read from one of the process streams."""

    stream: str
    data: bytes


@dataclass(frozen=True, slots=True)
class ReaderFinished:
    """A stream reader hit EOF (or a read error) and will push nothing more."""

    stream: str


@dataclass(frozen=True, slots=True)
class ProcessFinished:
    outcome: ProcessOutcome


RelayEvent = Union[OutputChunk, ReaderFinished, ProcessFinished]


class OutputAggregator:
    """Run one reader thread per stream plus a waiter thread for process exit.

    Every thread only pushes immutable events onto ``queue``; nothing else is
    shared. Events from one reader keep their order, so a reader's
    :class:`ReaderFinished` is always dequeued after all of its chunks.

    Readers poll their pipe with ``select`` so :meth:`stop` can end them even
    when a background child of the command still holds the write end open.
    After :meth:`stop` readers close their pipes and push nothing more.
    """

    STREAMS = ("stdout", "stderr")

    def __init__(
        self,
        process: RunningProcess,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.process = process
        self.chunk_size = chunk_size
        self.queue: Queue[RelayEvent] = Queue(maxsize=queue_size)
        self._threads: list[threading.Thread] = []
        self._stopped = threading.Event()

    def start(self) -> Queue[RelayEvent]:
        pipes = {"stdout": self.process.stdout, "stderr": self.process.stderr}
        for label in self.STREAMS:
            self._spawn(self._pump, pipes[label], label, name=f"relay-{label}")
        self._spawn(self._wait, name="relay-wait")
        return self.queue

    def stop(self) -> None:
        """Abandon readers that have not reached EOF yet."""

        self._stopped.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def join(self, timeout: float | None = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    # ------------------------------------------------------------------ helpers
    def _spawn(self, target: Callable[..., None], *args: object, name: str) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    def _pump(self, pipe: IO[bytes], label: str) -> None:
        try:
            with pipe:
                while not self._stopped.is_set():
                    if not self._readable(pipe):
                        continue
                    data = pipe.read(self.chunk_size)
                    if not data:
                        break
                    self._emit(OutputChunk(stream=label, data=bytes(data)))
        except (OSError, ValueError) as exc:
            logger.warning("relay.reader_error", extra={"stream": label, "error": str(exc)})
        finally:
            self._emit(ReaderFinished(stream=label))

    def _readable(self, pipe: IO[bytes]) -> bool:
        try:
            fileno = pipe.fileno()
        except (AttributeError, OSError, ValueError):
            # Not backed by a descriptor; fall back to a blocking read.
            return True
        ready, _, _ = select.select([fileno], [], [], POLL_INTERVAL)
        return bool(ready)

    def _emit(self, event: RelayEvent) -> None:
        while not self._stopped.is_set():
            try:
                self.queue.put(event, timeout=POLL_INTERVAL)
            except Full:
                continue
            return

    def _wait(self) -> None:
        self._emit(ProcessFinished(outcome=self.process.wait()))
