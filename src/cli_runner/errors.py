"""Typed exceptions raised by the CLI runner."""

from __future__ import annotations

from collections.abc import Sequence


class CliRunnerError(Exception):
    """Base exception for all CLI runner errors."""

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CliError(CliRunnerError):
    """Base for errors tied to one invocation of the wrapped tool."""

    def __init__(
        self,
        message: str,
        command: str,
        args: Sequence[str],
        *,
        details: dict[str, object] | None = None,
    ) -> None:
        self.command = command
        self.arguments = list(args)
        super().__init__(
            message,
            details={"command": command, "args": list(args), **(details or {})},
        )

    @property
    def command_string(self) -> str:
        """The failing command line, for display."""
        return " ".join([self.command, *self.arguments])


class CliSpawnError(CliError):
    """Raised when the subprocess could not be started."""

    def __init__(self, command: str, args: Sequence[str], cause: BaseException) -> None:
        self.cause = cause
        super().__init__(
            f"Failed to start command {' '.join([command, *args])}: {cause}",
            command,
            args,
            details={"cause": str(cause)},
        )


class CliExecutionError(CliError):
    """Raised when the subprocess exits with a nonzero code."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        exit_code: int,
        stdout: str,
        stderr: str,
    ) -> None:
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"CLI exited with code {exit_code}: {stderr}",
            command,
            args,
            details={"exit_code": exit_code, "stdout": stdout, "stderr": stderr},
        )


class CliTimeoutError(CliError):
    """Raised when an attempt exceeds its time budget.

    The subprocess has already been terminated when this is raised. Any output
    captured before the deadline is kept for diagnosis.
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        timeout_ms: int,
        *,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.timeout_ms = timeout_ms
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"CLI operation timed out after {timeout_ms}ms: {' '.join([command, *args])}",
            command,
            args,
            details={"timeout_ms": timeout_ms},
        )


class RetriesExhaustedError(CliError):
    """Raised when every allowed attempt failed with a retryable error."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        attempts: int,
        last_error: CliError,
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Maximum retry attempts ({attempts}) exceeded for "
            f"{' '.join([command, *args])}: {last_error.message}",
            command,
            args,
            details={
                "attempts": attempts,
                "last_error": type(last_error).__name__,
                "last_error_details": last_error.details,
            },
        )


def is_cli_error(error: object) -> bool:
    """Return True for errors raised by a tool invocation."""
    return isinstance(error, CliError)
