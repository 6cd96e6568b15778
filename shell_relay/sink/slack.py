"""Slack Web API sink powered by urllib."""

from __future__ import annotations

import json
import logging
from http.client import HTTPException, HTTPResponse
from typing import Any, cast
from urllib import error, parse, request

from shell_relay.sink.base import LiveSession, Recipient, SinkError
from shell_relay.version import __version__

__all__ = ["DEFAULT_SLACK_API_BASE_URL", "SlackSink"]

DEFAULT_SLACK_API_BASE_URL = "https://slack.com/api"

# Channel ids with these prefixes need explicit recipients to stream.
_RECIPIENT_CHANNEL_PREFIXES = ("C", "G")

logger = logging.getLogger(__name__)


class SlackSink:
    """Minimal client for the Slack chat streaming methods."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str = DEFAULT_SLACK_API_BASE_URL,
        timeout: float = 10.0,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def post_initial(self, channel: str, text: str) -> str:
        payload = self._call("chat.postMessage", {"channel": channel, "text": text})
        ts = payload.get("ts") or (payload.get("message") or {}).get("ts")
        if not ts:
            raise SinkError("no timestamp in postMessage response")
        return str(ts)

    def start_session(
        self, channel: str, anchor: str, recipient: Recipient | None = None
    ) -> LiveSession:
        fields = {"channel": channel, "thread_ts": anchor}
        if recipient is not None and channel.startswith(_RECIPIENT_CHANNEL_PREFIXES):
            if recipient.user_id:
                fields["recipient_user_id"] = recipient.user_id
            if recipient.team_id:
                fields["recipient_team_id"] = recipient.team_id
        payload = self._call("chat.startStream", fields)
        stream_id = payload.get("stream_id")
        return LiveSession(
            channel=channel,
            anchor=anchor,
            stream_id=str(stream_id) if stream_id else None,
        )

    def append(self, session: LiveSession, text: str) -> bool:
        fields = {"channel": session.channel, "ts": session.anchor, "markdown_text": text}
        return self._call_ok("chat.appendStream", fields)

    def stop(self, session: LiveSession) -> bool:
        return self._call_ok("chat.stopStream", {"channel": session.channel, "ts": session.anchor})

    def post_reply(self, channel: str, anchor: str, text: str) -> bool:
        fields = {"channel": channel, "thread_ts": anchor, "text": text}
        return self._call_ok("chat.postMessage", fields)

    # ------------------------------------------------------------------ helpers
    def _call_ok(self, method: str, fields: dict[str, str]) -> bool:
        try:
            self._call(method, fields)
        except SinkError as exc:
            logger.warning("slack.call_failed", extra={"method": method, "error": str(exc)})
            return False
        return True

    def _call(self, method: str, fields: dict[str, str]) -> dict[str, Any]:
        data = parse.urlencode({"token": self._token, **fields}).encode()
        headers = {
            "User-Agent": f"shell-relay/{__version__}",
            "Content-Type": "application/x-www-form-urlencoded",
            "Authorization": f"Bearer {self._token}",
        }
        try:
            req = request.Request(
                f"{self._base_url}/{method}", data=data, headers=headers, method="POST"
            )
            with cast(HTTPResponse, request.urlopen(req, timeout=self._timeout)) as resp:
                body = resp.read()
        except error.HTTPError as exc:
            raise SinkError(f"{method}: HTTP {exc.code}") from exc
        except (error.URLError, HTTPException, OSError, ValueError) as exc:
            # HTTPException covers truncated bodies and malformed status lines;
            # ValueError covers a base URL urllib cannot parse.
            raise SinkError(f"{method}: {exc}") from exc
        try:
            payload = json.loads(body.decode() or "{}")
        except ValueError as exc:
            raise SinkError(f"{method}: invalid JSON response") from exc
        if not isinstance(payload, dict):
            raise SinkError(f"{method}: unexpected response shape")
        if not payload.get("ok"):
            raise SinkError(f"slack API error: {payload.get('error') or 'unknown'}")
        return cast(dict[str, Any], payload)
