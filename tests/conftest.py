"""Pytest configuration and fixtures."""

import os
import sys
import time
from pathlib import Path

import pytest

from cli_runner.execution.types import Command, ExecutionRequest, RetryConfig


def process_alive(pid: int) -> bool:
    """True while ``pid`` exists and is not a zombie."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    stat = Path(f"/proc/{pid}/stat")
    if stat.exists():
        try:
            # Field 3 is the state; the command name in field 2 may contain spaces
            state = stat.read_text().rsplit(")", 1)[1].split()[0]
        except (OSError, IndexError):
            return False
        return state not in {"Z", "X"}
    return True


def wait_until_dead(pid: int, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not process_alive(pid):
            return True
        time.sleep(0.02)
    return not process_alive(pid)


@pytest.fixture
def python() -> Command:
    """Command running the current interpreter."""
    return Command(sys.executable)


@pytest.fixture
def request_for():
    """Build an ExecutionRequest for inline Python code."""

    def _build(code: str, *, timeout_ms: int = 5000, **kwargs) -> ExecutionRequest:
        return ExecutionRequest(arguments=["-c", code], timeout_ms=timeout_ms, **kwargs)

    return _build


@pytest.fixture
def single_attempt() -> RetryConfig:
    return RetryConfig(max_attempts=1, initial_delay_ms=0)


@pytest.fixture
def wait_dead():
    """Poll until a pid is gone (or only a zombie)."""
    return wait_until_dead
