"""Click-based CLI for running the relay service or a single relay."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import click

from shell_relay.config import ConfigError, RelaySettings, build_coordinator, load_settings
from shell_relay.relay import AnchorError, ExecutionRequest

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass
class CLIState:
    config_path: Path | None
    settings: RelaySettings | None = None

    def ensure_settings(self) -> RelaySettings:
        if self.settings is None:
            try:
                self.settings = load_settings(path=self.config_path)
            except ConfigError as exc:
                raise click.UsageError(str(exc)) from exc
        return self.settings


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    help="TOML settings file (defaults to $SHELL_RELAY_CONFIG).",
)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="INFO",
    show_default=True,
)
@click.pass_context
def app(ctx: click.Context, config_path: Path | None, log_level: str) -> None:
    """Relay shell command output into Slack messages."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    ctx.obj = CLIState(config_path=config_path)


@app.command()
@click.option("--host", help="Interface to bind (overrides settings).")
@click.option("--port", type=int, help="Port to listen on (overrides settings).")
@click.pass_obj
def serve(state: CLIState, host: str | None, port: int | None) -> None:
    """Start the slash-command webhook server."""

    import uvicorn

    from shell_relay.api.main import create_app

    settings = state.ensure_settings().merged(host=host, port=port)
    click.echo(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


@app.command()
@click.argument("command")
@click.option("--channel", required=True, help="Channel id to post into.")
@click.option("--user", "user_id", help="User id mentioned in the placeholder message.")
@click.option("--team", "team_id", help="Team id used as a streaming recipient hint.")
@click.pass_obj
def run(
    state: CLIState,
    command: str,
    channel: str,
    user_id: str | None,
    team_id: str | None,
) -> None:
    """Run COMMAND once and relay its output to CHANNEL."""

    coordinator = build_coordinator(state.ensure_settings())
    request = ExecutionRequest(
        command=command, channel_id=channel, user_id=user_id, team_id=team_id
    )
    try:
        result = coordinator.execute(request)
    except AnchorError as exc:
        raise click.ClickException(f"Could not post initial message: {exc}") from exc
    click.echo(
        f"Exit code {result.report.exit_code}; delivered via "
        f"{result.delivered_via or 'nothing'} ({result.mode.value})."
    )
    if result.delivered_via is None:
        raise SystemExit(1)


def main() -> None:  # pragma: no cover - console entry point
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
