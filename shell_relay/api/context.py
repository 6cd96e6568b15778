"""Application context helpers shared across routers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import cast

from fastapi import Request

from shell_relay.config import RelaySettings, build_coordinator
from shell_relay.relay import RelayDispatcher


@dataclass(slots=True)
class AppContext:
    """Container for shared application dependencies."""

    dispatcher: RelayDispatcher
    command_marker: str = "$"

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> AppContext:
        return cls(
            dispatcher=RelayDispatcher(
                build_coordinator(settings), max_workers=settings.max_workers
            ),
            command_marker=settings.command_marker,
        )


def get_app_context(request: Request) -> AppContext:
    """Return the configured :class:`AppContext`."""

    context = getattr(request.app.state, "context", None)
    if context is None:  # pragma: no cover - defensive guard
        raise RuntimeError("Application context missing")
    return cast(AppContext, context)


__all__ = ["AppContext", "get_app_context"]
