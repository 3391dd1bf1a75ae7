"""Subprocess wrapper for external command-line tools.

Resolves the tool's executable once, runs it with a scrubbed environment and
a hard per-attempt timeout, retries transient failures with exponential
backoff, and reports every failure as a typed error.
"""

from cli_runner.errors import (
    CliError,
    CliExecutionError,
    CliRunnerError,
    CliSpawnError,
    CliTimeoutError,
    RetriesExhaustedError,
)
from cli_runner.execution import (
    CliRunner,
    Command,
    CommandResolver,
    ExecutionRequest,
    ExecutionResult,
    OutputLine,
    OutputPolicy,
    ProcessExecutor,
    RetryConfig,
    RetryPolicy,
    StreamingExecution,
)

__version__ = "0.1.0"
__all__ = [
    "CliError",
    "CliExecutionError",
    "CliRunner",
    "CliRunnerError",
    "CliSpawnError",
    "CliTimeoutError",
    "Command",
    "CommandResolver",
    "ExecutionRequest",
    "ExecutionResult",
    "OutputLine",
    "OutputPolicy",
    "ProcessExecutor",
    "RetriesExhaustedError",
    "RetryConfig",
    "RetryPolicy",
    "StreamingExecution",
    "__version__",
]
