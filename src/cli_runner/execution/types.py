"""Value types shared by the resolver, executor and retry policy."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

_BRACKETED_INFO = re.compile(r"^\[.*\]\s*(Loaded|Using|Authenticated)")


@dataclass(frozen=True)
class Command:
    """Resolved executable plus fixed leading arguments."""

    executable: str
    base_args: tuple[str, ...] = ()

    def argv(self, arguments: Sequence[str] = ()) -> list[str]:
        """Full argv for one invocation."""
        return [self.executable, *self.base_args, *arguments]

    def call_args(self, arguments: Sequence[str] = ()) -> list[str]:
        """Arguments after the executable (base args first)."""
        return [*self.base_args, *arguments]


@dataclass(frozen=True)
class RetryConfig:
    """Bounded exponential backoff settings.

    Attributes:
        max_attempts: Total attempts including the first one (>= 1).
        initial_delay_ms: Delay before the second attempt.
        backoff_multiplier: Growth factor between successive delays (>= 1).
        max_delay_ms: Upper bound for any single delay.
        retryable_exit_codes: Exit codes treated as transient failures.
    """

    max_attempts: int = 3
    initial_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    max_delay_ms: int = 30000
    retryable_exit_codes: frozenset[int] = frozenset()

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_delay_ms < 0:
            raise ValueError("initial_delay_ms must be >= 0")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")
        if self.max_delay_ms < 0:
            raise ValueError("max_delay_ms must be >= 0")
        # Accept any iterable of codes from callers
        object.__setattr__(self, "retryable_exit_codes", frozenset(self.retryable_exit_codes))


@dataclass
class ExecutionRequest:
    """Per-call parameters for one logical invocation."""

    arguments: list[str]
    timeout_ms: int = 60000
    working_directory: str | None = None
    # None deletes the key from the child environment
    env_overrides: dict[str, str | None] = field(default_factory=dict)
    retry: RetryConfig = field(default_factory=RetryConfig)

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of a successful (exit code 0) invocation."""

    stdout: str
    stderr: str
    exit_code: int
    duration_s: float = 0.0
    command: list[str] = field(default_factory=list)


StreamName = Literal["stdout", "stderr"]


@dataclass(frozen=True)
class OutputLine:
    """One line of live output from a streaming invocation."""

    stream: StreamName
    text: str
    info: bool = False


def default_info_message(line: str) -> bool:
    """Recognise the wrapped tool's credential banners on stderr."""
    text = line.strip()
    return (
        text.startswith("Loaded cached credentials")
        or "Using cached credentials" in text
        or _BRACKETED_INFO.match(text) is not None
    )


@dataclass(frozen=True)
class OutputPolicy:
    """Tool-specific classification of stderr lines."""

    is_info_message: Callable[[str], bool] = default_info_message


class LogSink(Protocol):
    """Logger shape the execution core depends on (structlog-compatible)."""

    def debug(self, event: str, **kw: Any) -> Any: ...

    def info(self, event: str, **kw: Any) -> Any: ...

    def warning(self, event: str, **kw: Any) -> Any: ...

    def error(self, event: str, **kw: Any) -> Any: ...
