from __future__ import annotations

from concurrent.futures import Future

import pytest
from fastapi.testclient import TestClient

from shell_relay.api.context import AppContext
from shell_relay.api.main import create_app
from shell_relay.relay import ExecutionRequest


class StubDispatcher:
    """Records submitted requests instead of running them."""

    def __init__(self) -> None:
        self.submitted: list[ExecutionRequest] = []
        self.shut_down = False

    def submit(self, request: ExecutionRequest) -> Future:
        self.submitted.append(request)
        return Future()

    def shutdown(self, *, wait: bool = True) -> None:
        self.shut_down = True


@pytest.fixture()
def dispatcher() -> StubDispatcher:
    return StubDispatcher()


@pytest.fixture()
def app(dispatcher: StubDispatcher):
    return create_app(AppContext(dispatcher=dispatcher))  # type: ignore[arg-type]


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client
