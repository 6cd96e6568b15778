"""Contract shared by every message sink implementation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

__all__ = ["LiveSession", "MessageSink", "Recipient", "SinkError"]


class SinkError(RuntimeError):
    """Raised when the remote message service rejects or fails a call."""


@dataclass(frozen=True, slots=True)
class Recipient:
    """Who a live session is addressed to (required by some channel types)."""

    user_id: str | None = None
    team_id: str | None = None


@dataclass(frozen=True, slots=True)
class LiveSession:
    """Handle for an incrementally updatable message."""

    channel: str
    anchor: str
    stream_id: str | None = None


@runtime_checkable
class MessageSink(Protocol):
    """Remote service that receives placeholder, live and fallback messages.

    ``post_initial`` and ``start_session`` return handles and raise
    :class:`SinkError` on failure. The remaining operations report their
    outcome as a boolean.
    """

    def post_initial(self, channel: str, text: str) -> str: ...

    def start_session(
        self, channel: str, anchor: str, recipient: Recipient | None = None
    ) -> LiveSession: ...

    def append(self, session: LiveSession, text: str) -> bool: ...

    def stop(self, session: LiveSession) -> bool: ...

    def post_reply(self, channel: str, anchor: str, text: str) -> bool: ...
