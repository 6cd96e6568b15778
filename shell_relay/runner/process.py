"""Shell process spawning and completion tracking."""

from __future__ import annotations

import enum
import signal
import subprocess
from dataclasses import dataclass
from typing import IO, Protocol

__all__ = [
    "FAILED_EXIT_CODE",
    "OutcomeKind",
    "ProcessOutcome",
    "ProcessRunner",
    "RunningProcess",
    "ShellProcess",
    "SpawnError",
]

# Reported for anything that did not end with a regular exit status.
FAILED_EXIT_CODE = -1


class SpawnError(RuntimeError):
    """Raised when the shell process cannot be started."""


class OutcomeKind(str, enum.Enum):
    EXITED = "exited"
    SIGNALED = "signaled"
    SPAWN_FAILED = "spawn_failed"


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    """How a child process ended."""

    kind: OutcomeKind
    exit_code: int
    signal_number: int | None = None
    reason: str | None = None

    @classmethod
    def exited(cls, exit_code: int) -> ProcessOutcome:
        return cls(kind=OutcomeKind.EXITED, exit_code=exit_code)

    @classmethod
    def signaled(cls, signal_number: int) -> ProcessOutcome:
        return cls(
            kind=OutcomeKind.SIGNALED,
            exit_code=FAILED_EXIT_CODE,
            signal_number=signal_number,
        )

    @classmethod
    def spawn_failed(cls, reason: str) -> ProcessOutcome:
        return cls(kind=OutcomeKind.SPAWN_FAILED, exit_code=FAILED_EXIT_CODE, reason=reason)

    @classmethod
    def from_returncode(cls, returncode: int) -> ProcessOutcome:
        if returncode < 0:
            return cls.signaled(-returncode)
        return cls.exited(returncode)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.EXITED and self.exit_code == 0

    @property
    def signal_name(self) -> str | None:
        if self.signal_number is None:
            return None
        try:
            return signal.Signals(self.signal_number).name
        except ValueError:
            return f"signal {self.signal_number}"


class RunningProcess(Protocol):
    """A started child exposing two byte streams and a blocking wait."""

    stdout: IO[bytes]
    stderr: IO[bytes]

    def wait(self) -> ProcessOutcome: ...


class ShellProcess:
    """Thin wrapper around :class:`subprocess.Popen` for a shell command."""

    def __init__(self, process: subprocess.Popen[bytes]) -> None:
        if process.stdout is None or process.stderr is None:  # pragma: no cover - Popen invariant
            raise SpawnError("process started without output pipes")
        self._process = process
        self.stdout: IO[bytes] = process.stdout
        self.stderr: IO[bytes] = process.stderr

    @property
    def pid(self) -> int:
        return self._process.pid

    def wait(self) -> ProcessOutcome:
        return ProcessOutcome.from_returncode(self._process.wait())


class ProcessRunner:
    """Start shell-interpreted commands with piped, unbuffered output."""

    def __init__(self, *, shell: str = "/bin/sh", env: dict[str, str] | None = None) -> None:
        self.shell = shell
        self.env = env

    def start(self, command: str) -> RunningProcess:
        try:
            process = subprocess.Popen(  # noqa: S603
                [self.shell, "-c", command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=self.env,
                bufsize=0,
            )
        except OSError as exc:
            raise SpawnError(str(exc)) from exc
        return ShellProcess(process)
