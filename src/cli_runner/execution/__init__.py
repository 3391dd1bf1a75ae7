"""Subprocess execution runtime for the wrapped CLI tool.

Provides command resolution, environment scrubbing, timeout-enforced
subprocess execution (buffered or streaming), and retry with backoff.
"""

from cli_runner.execution.command import CommandResolver
from cli_runner.execution.environment import (
    DENYLISTED_KEYS,
    SENSITIVE_KEYS,
    build_environment,
    mask_for_logging,
    resolve_working_directory,
)
from cli_runner.execution.executor import ProcessExecutor, StreamingExecution
from cli_runner.execution.retry import RetryPolicy, backoff_delay_ms, is_retryable
from cli_runner.execution.runner import CliRunner
from cli_runner.execution.types import (
    Command,
    ExecutionRequest,
    ExecutionResult,
    OutputLine,
    OutputPolicy,
    RetryConfig,
)

__all__ = [
    "DENYLISTED_KEYS",
    "SENSITIVE_KEYS",
    "CliRunner",
    "Command",
    "CommandResolver",
    "ExecutionRequest",
    "ExecutionResult",
    "OutputLine",
    "OutputPolicy",
    "ProcessExecutor",
    "RetryConfig",
    "RetryPolicy",
    "StreamingExecution",
    "backoff_delay_ms",
    "build_environment",
    "is_retryable",
    "mask_for_logging",
    "resolve_working_directory",
]
