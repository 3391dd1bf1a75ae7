"""Shared CLI utilities - colors, console, helpers."""

import asyncio
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from rich.console import Console

from cli_runner.errors import (
    CliError,
    CliExecutionError,
    CliSpawnError,
    CliTimeoutError,
    RetriesExhaustedError,
)

# SilkCircuit color palette
ELECTRIC_PURPLE = "#e135ff"
NEON_CYAN = "#80ffea"
ELECTRIC_YELLOW = "#f1fa8c"
SUCCESS_GREEN = "#50fa7b"
ERROR_RED = "#ff6363"

# Status output goes to stderr; stdout carries the wrapped tool's output
console = Console(stderr=True)

P = ParamSpec("P")
R = TypeVar("R")

# Conventional shell codes for failures that have no child exit code
EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[{SUCCESS_GREEN}]✓[/{SUCCESS_GREEN}] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[{ERROR_RED}]✗[/{ERROR_RED}] {message}")


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[{NEON_CYAN}]→[/{NEON_CYAN}] {message}")


def hint(message: str) -> None:
    """Print a hint message."""
    console.print(f"[{ELECTRIC_YELLOW}]Hint:[/{ELECTRIC_YELLOW}] {message}")


def run_async(func: Callable[P, Awaitable[R]]) -> Callable[P, R]:
    """Decorator to run async functions in sync context (for Typer commands)."""

    @wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(func(*args, **kwargs))

    return wrapper


def exit_code_for(err: CliError) -> int:
    """Map a typed failure to the process exit code of the CLI."""
    if isinstance(err, RetriesExhaustedError):
        return exit_code_for(err.last_error)
    if isinstance(err, CliExecutionError):
        return err.exit_code or 1
    if isinstance(err, CliTimeoutError):
        return EXIT_TIMEOUT
    if isinstance(err, CliSpawnError):
        return EXIT_NOT_FOUND
    return 1


def report_error(err: CliError) -> None:
    """Render a typed failure for a terminal user."""
    error(err.message)
    if isinstance(err, RetriesExhaustedError):
        console.print(f"  Attempts: [{NEON_CYAN}]{err.attempts}[/]")
        err = err.last_error
    if isinstance(err, (CliExecutionError, CliTimeoutError)) and err.stderr.strip():
        console.print(f"  stderr: {err.stderr.strip()}", markup=False, highlight=False)
    if isinstance(err, CliSpawnError):
        hint("Install the tool on PATH or pass --allow-fallback")


def parse_env_pairs(pairs: list[str] | None, unset: list[str] | None) -> dict[str, str | None]:
    """Turn ``KEY=VALUE`` options and ``--unset KEY`` options into overrides."""
    overrides: dict[str, str | None] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        overrides[key] = value
    for key in unset or []:
        overrides[key] = None
    return overrides
