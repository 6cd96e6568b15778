"""Relay coordinator, message formatting, and background dispatch."""

from .coordinator import (
    DEFAULT_FLUSH_INTERVAL,
    AnchorError,
    CommandExecution,
    CompletionReport,
    ExecutionRequest,
    RelayCoordinator,
    RelayError,
    RelayMode,
    RelayResult,
    RelayState,
)
from .dispatcher import RelayDispatcher

__all__ = [
    "DEFAULT_FLUSH_INTERVAL",
    "AnchorError",
    "CommandExecution",
    "CompletionReport",
    "ExecutionRequest",
    "RelayCoordinator",
    "RelayDispatcher",
    "RelayError",
    "RelayMode",
    "RelayResult",
    "RelayState",
]
