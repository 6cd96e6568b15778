"""Message sink contract and the Slack Web API adapter."""

from .base import LiveSession, MessageSink, Recipient, SinkError
from .slack import DEFAULT_SLACK_API_BASE_URL, SlackSink

__all__ = [
    "DEFAULT_SLACK_API_BASE_URL",
    "LiveSession",
    "MessageSink",
    "Recipient",
    "SinkError",
    "SlackSink",
]
