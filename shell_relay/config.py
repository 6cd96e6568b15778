"""Settings loaded from an optional TOML file plus environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

try:  # pragma: no cover - Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <=3.10
    import tomli as tomllib  # type: ignore[no-redef]

from shell_relay.relay.coordinator import (
    DEFAULT_DRAIN_GRACE,
    DEFAULT_FLUSH_INTERVAL,
    RelayCoordinator,
)
from shell_relay.runner import ProcessRunner
from shell_relay.sink.slack import DEFAULT_SLACK_API_BASE_URL, SlackSink

__all__ = ["ConfigError", "RelaySettings", "build_coordinator", "load_settings"]

_ENV_CONFIG = "SHELL_RELAY_CONFIG"
_ENV_TOKEN = "SLACK_TOKEN"
_ENV_BASE_URL = "SLACK_API_BASE_URL"
_ENV_PORT = "PORT"
_ENV_HOST = "SHELL_RELAY_HOST"
_ENV_SHELL = "SHELL_RELAY_SHELL"
_ENV_FLUSH = "SHELL_RELAY_FLUSH_INTERVAL"
_ENV_WORKERS = "SHELL_RELAY_MAX_WORKERS"
_ENV_GRACE = "SHELL_RELAY_DRAIN_GRACE"


class ConfigError(RuntimeError):
    """Raised when settings are missing or malformed."""


@dataclass(slots=True)
class RelaySettings:
    """Runtime configuration for the relay service."""

    slack_token: str
    slack_base_url: str = DEFAULT_SLACK_API_BASE_URL
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8080
    shell: str = "/bin/sh"
    flush_interval: float = DEFAULT_FLUSH_INTERVAL
    drain_grace: float = DEFAULT_DRAIN_GRACE
    max_workers: int = 4
    request_timeout: float = 10.0
    command_marker: str = "$"

    def merged(self, **overrides: Any) -> RelaySettings:
        """Return a copy with every non-``None`` override applied."""

        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _optional_number(raw: object, kind: type, name: str) -> Any:
    if raw is None or raw == "":
        return None
    try:
        value = kind(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a {kind.__name__} (received {raw!r})") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive (received {raw!r})")
    return value


def load_settings(
    environ: Mapping[str, str] | None = None, *, path: Path | None = None
) -> RelaySettings:
    """Build settings from ``path`` (or ``$SHELL_RELAY_CONFIG``) and the environment."""

    env = os.environ if environ is None else environ
    data: dict[str, Any] = {}
    config_file = path or (Path(env[_ENV_CONFIG]) if env.get(_ENV_CONFIG) else None)
    if config_file is not None:
        try:
            data = tomllib.loads(Path(config_file).read_text("utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Cannot read config file {config_file}: {exc}") from exc
    slack = data.get("slack", {})
    server = data.get("server", {})
    relay = data.get("relay", {})

    token = env.get(_ENV_TOKEN) or slack.get("token")
    if not token:
        raise ConfigError(f"{_ENV_TOKEN} environment variable is not set")

    settings = RelaySettings(slack_token=str(token))
    return settings.merged(
        slack_base_url=env.get(_ENV_BASE_URL) or slack.get("base_url"),
        request_timeout=_optional_number(slack.get("timeout"), float, "slack.timeout"),
        host=env.get(_ENV_HOST) or server.get("host"),
        port=_optional_number(env.get(_ENV_PORT) or server.get("port"), int, _ENV_PORT),
        shell=env.get(_ENV_SHELL) or relay.get("shell"),
        flush_interval=_optional_number(
            env.get(_ENV_FLUSH) or relay.get("flush_interval"), float, _ENV_FLUSH
        ),
        drain_grace=_optional_number(
            env.get(_ENV_GRACE) or relay.get("drain_grace"), float, _ENV_GRACE
        ),
        max_workers=_optional_number(
            env.get(_ENV_WORKERS) or relay.get("max_workers"), int, _ENV_WORKERS
        ),
        command_marker=relay.get("command_marker"),
    )


def build_coordinator(settings: RelaySettings) -> RelayCoordinator:
    """Wire a coordinator to the Slack sink described by ``settings``."""

    sink = SlackSink(
        token=settings.slack_token,
        base_url=settings.slack_base_url,
        timeout=settings.request_timeout,
    )
    return RelayCoordinator(
        sink=sink,
        runner=ProcessRunner(shell=settings.shell),
        flush_interval=settings.flush_interval,
        drain_grace=settings.drain_grace,
    )
