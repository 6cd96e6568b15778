from __future__ import annotations

import os
from queue import Queue

from shell_relay.runner import (
    OutputAggregator,
    OutputChunk,
    ProcessFinished,
    ProcessOutcome,
    ProcessRunner,
    ReaderFinished,
    RelayEvent,
)


def _collect(queue: Queue[RelayEvent]) -> list[RelayEvent]:
    events: list[RelayEvent] = []
    pending = {"stdout", "stderr"}
    finished = False
    while pending or not finished:
        event = queue.get(timeout=5)
        events.append(event)
        if isinstance(event, ReaderFinished):
            pending.discard(event.stream)
        elif isinstance(event, ProcessFinished):
            finished = True
    return events


def _joined(events: list[RelayEvent], stream: str) -> bytes:
    return b"".join(e.data for e in events if isinstance(e, OutputChunk) and e.stream == stream)


def test_chunks_respect_size_and_per_stream_order(scripted_runner) -> None:
    runner = scripted_runner(
        stdout=(b"abcdefghij", 0.01, b"klm"),
        stderr=(b"0123456789",),
        outcome=ProcessOutcome.exited(1),
    )
    aggregator = OutputAggregator(runner.start("ignored"), chunk_size=4, queue_size=2)
    events = _collect(aggregator.start())
    aggregator.join(timeout=5)

    chunks = [e for e in events if isinstance(e, OutputChunk)]
    assert all(0 < len(chunk.data) <= 4 for chunk in chunks)
    assert _joined(events, "stdout") == b"abcdefghijklm"
    assert _joined(events, "stderr") == b"0123456789"
    assert ProcessFinished(ProcessOutcome.exited(1)) in events


def test_reader_finished_follows_its_last_chunk(scripted_runner) -> None:
    runner = scripted_runner(stdout=(0.05, b"late"))
    aggregator = OutputAggregator(runner.start("ignored"))
    events = _collect(aggregator.start())

    done_at = events.index(ReaderFinished(stream="stdout"))
    chunk_at = events.index(OutputChunk(stream="stdout", data=b"late"))
    assert chunk_at < done_at
    assert runner.process.stdout.closed


def test_real_process_streams_are_drained() -> None:
    process = ProcessRunner().start("printf out; printf err >&2")
    aggregator = OutputAggregator(process)
    events = _collect(aggregator.start())
    aggregator.join(timeout=5)
    assert _joined(events, "stdout") == b"out"
    assert _joined(events, "stderr") == b"err"
    assert ProcessFinished(ProcessOutcome.exited(0)) in events


class _ExitedProcess:
    """Process that has already exited while something else holds its pipes."""

    def __init__(self, stdout, stderr) -> None:
        self.stdout = stdout
        self.stderr = stderr

    def wait(self) -> ProcessOutcome:
        return ProcessOutcome.exited(0)


def test_stop_ends_readers_on_pipes_that_stay_open() -> None:
    read_out, write_out = os.pipe()
    read_err, write_err = os.pipe()
    process = _ExitedProcess(
        os.fdopen(read_out, "rb", buffering=0), os.fdopen(read_err, "rb", buffering=0)
    )
    try:
        os.write(write_out, b"before")
        aggregator = OutputAggregator(process)
        queue = aggregator.start()
        seen: list[RelayEvent] = []
        while OutputChunk(stream="stdout", data=b"before") not in seen:
            seen.append(queue.get(timeout=5))

        aggregator.stop()
        aggregator.join(timeout=2)

        assert aggregator.stopped
        assert process.stdout.closed
        assert process.stderr.closed
        assert not any(isinstance(event, ReaderFinished) for event in seen)
    finally:
        os.close(write_out)
        os.close(write_err)
