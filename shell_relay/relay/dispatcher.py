"""Run relays in the background so webhook requests return immediately."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from shell_relay.relay.coordinator import ExecutionRequest, RelayCoordinator, RelayResult

__all__ = ["RelayDispatcher"]

logger = logging.getLogger(__name__)


class RelayDispatcher:
    """Submit execution requests to a bounded pool of relay threads."""

    def __init__(self, coordinator: RelayCoordinator, *, max_workers: int = 4) -> None:
        self.coordinator = coordinator
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="relay"
        )

    def submit(self, request: ExecutionRequest) -> Future[RelayResult]:
        logger.info(
            "relay.submitted",
            extra={"channel": request.channel_id, "command": request.command},
        )
        future = self._executor.submit(self.coordinator.execute, request)
        future.add_done_callback(self._log_failure)
        return future

    def shutdown(self, *, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    @staticmethod
    def _log_failure(future: Future[RelayResult]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("relay.aborted", exc_info=exc)
