"""Shared pytest fixtures."""

from __future__ import annotations

import json
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from email.message import Message
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs

import pytest

from shell_relay.runner import ProcessOutcome
from shell_relay.sink import LiveSession, Recipient, SinkError


@dataclass
class RecordingSink:
    """In-memory sink that records every call and fails on request."""

    fail_initial: bool = False
    fail_start: bool = False
    fail_append_at: int | None = None
    fail_stop: bool = False
    fail_reply: bool = False
    calls: list[str] = field(default_factory=list)
    appended: list[str] = field(default_factory=list)
    append_times: list[float] = field(default_factory=list)
    replies: list[str] = field(default_factory=list)
    recipients: list[Recipient | None] = field(default_factory=list)

    def post_initial(self, channel: str, text: str) -> str:
        self.calls.append("post_initial")
        if self.fail_initial:
            raise SinkError("channel_not_found")
        self.initial_text = text
        return "1700000000.000100"

    def start_session(
        self, channel: str, anchor: str, recipient: Recipient | None = None
    ) -> LiveSession:
        self.calls.append("start")
        self.recipients.append(recipient)
        if self.fail_start:
            raise SinkError("not_allowed")
        return LiveSession(channel=channel, anchor=anchor, stream_id="stream-1")

    def append(self, session: LiveSession, text: str) -> bool:
        self.calls.append("append")
        self.append_times.append(time.monotonic())
        if self.fail_append_at is not None and self.calls.count("append") >= self.fail_append_at:
            return False
        self.appended.append(text)
        return True

    def stop(self, session: LiveSession) -> bool:
        self.calls.append("stop")
        return not self.fail_stop

    def post_reply(self, channel: str, anchor: str, text: str) -> bool:
        self.calls.append("reply")
        if self.fail_reply:
            return False
        self.replies.append(text)
        return True

    @property
    def streamed(self) -> str:
        return "".join(self.appended)


class ScriptedPipe:
    """Byte stream that replays reads, sleeping where the script holds a float."""

    def __init__(self, *steps: bytes | float) -> None:
        self._steps = list(steps)
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        while self._steps:
            step = self._steps.pop(0)
            if isinstance(step, float):
                time.sleep(step)
                continue
            if size > 0 and len(step) > size:
                self._steps.insert(0, step[size:])
                step = step[:size]
            return step
        return b""

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> ScriptedPipe:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class FakeProcess:
    """Running-process stand-in whose exit is reported immediately."""

    def __init__(
        self,
        stdout: ScriptedPipe,
        stderr: ScriptedPipe | None = None,
        outcome: ProcessOutcome | None = None,
    ) -> None:
        self.stdout = stdout
        self.stderr = stderr or ScriptedPipe()
        self.outcome = outcome or ProcessOutcome.exited(0)

    def wait(self) -> ProcessOutcome:
        return self.outcome


class FakeRunner:
    def __init__(self, process: FakeProcess) -> None:
        self.process = process
        self.commands: list[str] = []

    def start(self, command: str) -> FakeProcess:
        self.commands.append(command)
        return self.process


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@dataclass
class FakeSlackAPI:
    """Records Slack Web API calls and answers from a per-method table."""

    url: str = ""
    requests: list[tuple[str, dict[str, str], Message]] = field(default_factory=list)
    responses: dict[str, Any] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def respond(
        self, method: str, payload: Any, status: int = 200, content_length: int | None = None
    ) -> None:
        """Answer ``method`` with ``payload``; ``content_length`` may overstate the body."""

        self.responses[method] = (status, payload, content_length)

    def calls(self, method: str) -> list[dict[str, str]]:
        with self.lock:
            return [form for path, form, _ in self.requests if path == method]

    def methods(self) -> list[str]:
        with self.lock:
            return [path for path, _, _ in self.requests]


_DEFAULT_RESPONSES: dict[str, Any] = {
    "chat.postMessage": (200, {"ok": True, "ts": "1700000000.000100"}, None),
    "chat.startStream": (200, {"ok": True, "stream_id": "test-stream-id-123"}, None),
    "chat.appendStream": (200, {"ok": True}, None),
    "chat.stopStream": (200, {"ok": True}, None),
}


@pytest.fixture()
def slack_api() -> Iterator[FakeSlackAPI]:
    api = FakeSlackAPI(responses=dict(_DEFAULT_RESPONSES))

    class Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:  # noqa: N802 - http.server naming
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length).decode()
            form = {key: values[0] for key, values in parse_qs(body).items()}
            method = self.path.lstrip("/")
            with api.lock:
                api.requests.append((method, form, self.headers))
            status, payload, content_length = api.responses.get(method, (404, None, None))
            raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(content_length or len(raw)))
            self.send_header("Connection", "close")
            self.end_headers()
            self.wfile.write(raw)

        def log_message(self, *args: object) -> None:
            return None

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    api.url = f"http://127.0.0.1:{server.server_address[1]}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield api
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture()
def make_sink() -> type[RecordingSink]:
    return RecordingSink


@pytest.fixture()
def scripted_runner():
    """Build a runner whose process replays scripted stdout/stderr reads."""

    def _build(
        stdout: tuple[bytes | float, ...] = (),
        stderr: tuple[bytes | float, ...] = (),
        outcome: ProcessOutcome | None = None,
    ) -> FakeRunner:
        return FakeRunner(FakeProcess(ScriptedPipe(*stdout), ScriptedPipe(*stderr), outcome))

    return _build
