"""Subprocess runner and output aggregation helpers."""

from .aggregator import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_QUEUE_SIZE,
    OutputAggregator,
    OutputChunk,
    ProcessFinished,
    ReaderFinished,
    RelayEvent,
)
from .process import (
    FAILED_EXIT_CODE,
    OutcomeKind,
    ProcessOutcome,
    ProcessRunner,
    RunningProcess,
    ShellProcess,
    SpawnError,
)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_QUEUE_SIZE",
    "FAILED_EXIT_CODE",
    "OutcomeKind",
    "OutputAggregator",
    "OutputChunk",
    "ProcessFinished",
    "ProcessOutcome",
    "ProcessRunner",
    "ReaderFinished",
    "RelayEvent",
    "RunningProcess",
    "ShellProcess",
    "SpawnError",
]
