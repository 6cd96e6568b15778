"""Relay a shell command's output into a live message, degrading to one reply."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from queue import Empty, Queue

try:  # pragma: no cover - Python 3.11+
    from datetime import UTC
except ImportError:  # pragma: no cover - fallback for <3.11
    from datetime import timezone as _timezone

    UTC = _timezone.utc  # noqa: UP017

from shell_relay.relay.formatting import (
    OUTPUT_PREAMBLE,
    render_placeholder,
    render_report,
    render_spawn_error,
)
from shell_relay.runner import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_QUEUE_SIZE,
    OutputAggregator,
    OutputChunk,
    ProcessFinished,
    ProcessOutcome,
    ProcessRunner,
    ReaderFinished,
    RelayEvent,
    SpawnError,
)
from shell_relay.sink import LiveSession, MessageSink, Recipient, SinkError

__all__ = [
    "AnchorError",
    "CommandExecution",
    "CompletionReport",
    "DEFAULT_DRAIN_GRACE",
    "DEFAULT_FLUSH_INTERVAL",
    "ExecutionRequest",
    "RelayCoordinator",
    "RelayError",
    "RelayMode",
    "RelayResult",
    "RelayState",
]

DEFAULT_FLUSH_INTERVAL = 1.0
# How long readers may keep draining once the process has exited.
DEFAULT_DRAIN_GRACE = 1.0

logger = logging.getLogger(__name__)


class RelayError(RuntimeError):
    """Base class for failures that abort a relay."""


class AnchorError(RelayError):
    """Raised when the placeholder message cannot be posted."""


class RelayMode(str, enum.Enum):
    STREAMING = "streaming"
    DEGRADED = "degraded"


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """A command plus the addressing needed to report on it."""

    command: str
    channel_id: str
    user_id: str | None = None
    team_id: str | None = None
    response_url: str | None = None

    @property
    def recipient(self) -> Recipient:
        return Recipient(user_id=self.user_id, team_id=self.team_id)


@dataclass(frozen=True, slots=True)
class CommandExecution:
    command: str
    started_at: datetime
    started_monotonic: float


@dataclass(frozen=True, slots=True)
class CompletionReport:
    outcome: ProcessOutcome
    elapsed: timedelta

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code


@dataclass(slots=True)
class RelayState:
    """Delivery progress. ``last_sent_offset`` only moves after a successful flush."""

    last_sent_offset: int = 0
    mode: RelayMode = RelayMode.STREAMING


@dataclass(slots=True)
class RelayResult:
    """Summary of a finished relay."""

    mode: RelayMode
    delivered_via: str | None
    report: CompletionReport
    output: bytes
    flushes: int = 0
    degrade_reason: str | None = None

    @property
    def outcome(self) -> ProcessOutcome:
        return self.report.outcome


def _complete_utf8_length(data: bytes) -> int:
    """Length of the longest prefix that does not end inside a UTF-8 sequence."""

    for back in range(1, min(4, len(data)) + 1):
        byte = data[-back]
        if byte & 0xC0 == 0x80:
            continue
        if byte >= 0xC0:
            needed = 2 if byte < 0xE0 else 3 if byte < 0xF0 else 4
            if back < needed:
                return len(data) - back
        return len(data)
    return len(data)


class RelayCoordinator:
    """Drive one command at a time from placeholder to final delivery.

    The coordinator runs entirely on the calling thread. Reader and waiter
    threads hand it events through a bounded queue, and the flush timer is a
    deadline on the blocking queue read, so the buffer and state need no
    locks.

    Once the process exits, readers get ``drain_grace`` seconds to reach EOF.
    Pipes still held open after that (by a backgrounded child, say) are
    abandoned and the relay finalizes with what was read.
    """

    def __init__(
        self,
        *,
        sink: MessageSink,
        runner: ProcessRunner | None = None,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
        drain_grace: float = DEFAULT_DRAIN_GRACE,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if flush_interval <= 0:
            raise ValueError("flush_interval must be positive")
        if drain_grace < 0:
            raise ValueError("drain_grace must not be negative")
        self.sink = sink
        self.runner = runner or ProcessRunner()
        self.flush_interval = flush_interval
        self.drain_grace = drain_grace
        self.chunk_size = chunk_size
        self.queue_size = queue_size
        self.clock = clock

    def execute(self, request: ExecutionRequest) -> RelayResult:
        anchor = self._post_anchor(request)
        return _RelayRun(self, request, anchor).run()

    def _post_anchor(self, request: ExecutionRequest) -> str:
        text = render_placeholder(request.command, request.user_id)
        try:
            return self.sink.post_initial(request.channel_id, text)
        except (SinkError, OSError) as exc:
            logger.error(
                "relay.anchor_failed",
                extra={"channel": request.channel_id, "error": str(exc)},
            )
            raise AnchorError(str(exc)) from exc


class _RelayRun:
    """State for a single execution; discarded when :meth:`run` returns."""

    def __init__(
        self, coordinator: RelayCoordinator, request: ExecutionRequest, anchor: str
    ) -> None:
        self.coordinator = coordinator
        self.sink = coordinator.sink
        self.request = request
        self.anchor = anchor
        self.buffer = bytearray(OUTPUT_PREAMBLE.encode())
        self.state = RelayState()
        self.session: LiveSession | None = None
        self.flushes = 0
        self.degrade_reason: str | None = None

    def run(self) -> RelayResult:
        self.session = self._start_session()
        clock = self.coordinator.clock
        execution = CommandExecution(
            command=self.request.command,
            started_at=datetime.now(UTC),
            started_monotonic=clock(),
        )
        try:
            process = self.coordinator.runner.start(execution.command)
        except SpawnError as exc:
            logger.warning("relay.spawn_failed", extra={"error": str(exc)})
            self.buffer += render_spawn_error(str(exc)).encode()
            outcome = ProcessOutcome.spawn_failed(str(exc))
            finished_at = clock()
        else:
            aggregator = OutputAggregator(
                process,
                chunk_size=self.coordinator.chunk_size,
                queue_size=self.coordinator.queue_size,
            )
            outcome, finished_at = self._consume(aggregator)
        elapsed = timedelta(seconds=max(0.0, finished_at - execution.started_monotonic))
        report = CompletionReport(outcome=outcome, elapsed=elapsed)
        self.buffer += render_report(report).encode()
        delivered_via = self._finalize()
        return RelayResult(
            mode=self.state.mode,
            delivered_via=delivered_via,
            report=report,
            output=bytes(self.buffer),
            flushes=self.flushes,
            degrade_reason=self.degrade_reason,
        )

    # ------------------------------------------------------------------ states
    def _start_session(self) -> LiveSession | None:
        try:
            session = self.sink.start_session(
                self.request.channel_id, self.anchor, self.request.recipient
            )
        except (SinkError, OSError) as exc:
            self._degrade(f"start failed: {exc}")
            return None
        logger.info("relay.streaming", extra={"channel": self.request.channel_id})
        return session

    def _consume(self, aggregator: OutputAggregator) -> tuple[ProcessOutcome, float]:
        """Pump events until the process exited and its readers are done.

        Returns the outcome and the clock reading taken when the exit was
        dequeued.
        """

        clock = self.coordinator.clock
        interval = self.coordinator.flush_interval
        events = aggregator.start()
        pending_readers = set(OutputAggregator.STREAMS)
        outcome: ProcessOutcome | None = None
        finished_at = 0.0
        drain_deadline: float | None = None
        next_tick = clock() + interval
        while pending_readers or outcome is None:
            now = clock()
            if drain_deadline is not None and now >= drain_deadline:
                logger.warning(
                    "relay.readers_abandoned",
                    extra={"streams": sorted(pending_readers), "channel": self.request.channel_id},
                )
                aggregator.stop()
                self._drain_ready(events)
                break
            if now >= next_tick:
                self._flush(final=False)
                next_tick = now + interval
            wake_at = next_tick if drain_deadline is None else min(next_tick, drain_deadline)
            try:
                event = events.get(timeout=max(0.0, wake_at - now))
            except Empty:
                continue
            if isinstance(event, OutputChunk):
                self.buffer += event.data
            elif isinstance(event, ReaderFinished):
                pending_readers.discard(event.stream)
            elif isinstance(event, ProcessFinished):
                outcome = event.outcome
                finished_at = clock()
                drain_deadline = finished_at + self.coordinator.drain_grace
        aggregator.join(timeout=self.coordinator.drain_grace)
        return outcome, finished_at

    def _drain_ready(self, events: Queue[RelayEvent]) -> None:
        while True:
            try:
                event = events.get_nowait()
            except Empty:
                return
            if isinstance(event, OutputChunk):
                self.buffer += event.data

    def _flush(self, *, final: bool) -> None:
        if self.state.mode is RelayMode.DEGRADED or self.session is None:
            return
        pending = bytes(self.buffer[self.state.last_sent_offset :])
        if not final:
            pending = pending[: _complete_utf8_length(pending)]
        if not pending:
            return
        text = pending.decode("utf-8", errors="replace")
        if not text.strip():
            return
        try:
            ok = self.sink.append(self.session, text)
        except (SinkError, OSError) as exc:
            logger.warning("relay.append_error", extra={"error": str(exc)})
            ok = False
        if not ok:
            self._degrade("append failed")
            return
        self.state.last_sent_offset += len(pending)
        self.flushes += 1

    def _finalize(self) -> str | None:
        if self.state.mode is RelayMode.STREAMING and self.session is not None:
            self._flush(final=True)
            if self.state.mode is RelayMode.STREAMING:
                try:
                    stopped = self.sink.stop(self.session)
                except (SinkError, OSError) as exc:
                    logger.warning("relay.stop_error", extra={"error": str(exc)})
                    stopped = False
                if stopped:
                    return "stream"
                self._degrade("stop failed")
        return self._post_fallback()

    def _post_fallback(self) -> str | None:
        text = self.buffer.decode("utf-8", errors="replace")
        if not text.strip():
            return None
        try:
            posted = self.sink.post_reply(self.request.channel_id, self.anchor, text)
        except (SinkError, OSError) as exc:
            logger.error("relay.fallback_error", extra={"error": str(exc)})
            posted = False
        if not posted:
            logger.error("relay.fallback_failed", extra={"channel": self.request.channel_id})
            return None
        return "fallback"

    def _degrade(self, reason: str) -> None:
        if self.state.mode is RelayMode.DEGRADED:
            return
        self.state.mode = RelayMode.DEGRADED
        self.session = None
        self.degrade_reason = reason
        logger.info("relay.degraded", extra={"reason": reason, "channel": self.request.channel_id})
