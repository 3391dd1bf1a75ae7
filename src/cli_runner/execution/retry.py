"""Bounded retry with exponential backoff around the process executor."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from cli_runner.errors import (
    CliError,
    CliExecutionError,
    CliSpawnError,
    CliTimeoutError,
    RetriesExhaustedError,
)
from cli_runner.execution.executor import ProcessExecutor
from cli_runner.execution.types import (
    Command,
    ExecutionRequest,
    ExecutionResult,
    LogSink,
    RetryConfig,
)

log = structlog.get_logger()

Sleep = Callable[[float], Awaitable[None]]


def is_retryable(error: BaseException, config: RetryConfig) -> bool:
    """Decide whether a failed attempt is worth repeating.

    Timeouts and spawn failures never are; a nonzero exit only when its code
    is in ``config.retryable_exit_codes``.
    """
    if isinstance(error, (CliTimeoutError, CliSpawnError)):
        return False
    if isinstance(error, CliExecutionError):
        return error.exit_code in config.retryable_exit_codes
    return False


def backoff_delay_ms(attempt: int, config: RetryConfig) -> float:
    """Delay before ``attempt`` (1-based); zero for the first attempt."""
    if attempt < 2:
        return 0.0
    delay = config.initial_delay_ms * config.backoff_multiplier ** (attempt - 2)
    return float(min(delay, config.max_delay_ms))


class RetryPolicy:
    """Drives sequential attempts of one request until success or exhaustion."""

    def __init__(
        self,
        executor: ProcessExecutor,
        *,
        sleep: Sleep = asyncio.sleep,
        logger: LogSink | None = None,
    ) -> None:
        self.executor = executor
        self._sleep = sleep
        self._log = logger if logger is not None else log

    async def execute_with_retry(
        self, command: Command, request: ExecutionRequest
    ) -> ExecutionResult:
        """Run ``request`` with up to ``request.retry.max_attempts`` attempts.

        Raises:
            CliSpawnError, CliTimeoutError, CliExecutionError: The first
                non-retryable failure, unchanged.
            RetriesExhaustedError: Every attempt failed with a retryable error.
        """
        config = request.retry

        attempt = 0
        while True:
            attempt += 1
            if attempt > 1:
                delay_ms = backoff_delay_ms(attempt, config)
                self._log.info(
                    "retry_scheduled",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    delay_ms=delay_ms,
                )
                await self._sleep(delay_ms / 1000)

            try:
                return await self.executor.execute(command, request)
            except CliError as e:
                if not is_retryable(e, config):
                    self._log.warning(
                        "attempt_failed_not_retryable",
                        attempt=attempt,
                        error_type=type(e).__name__,
                        error=e.message,
                    )
                    raise

                if attempt == config.max_attempts:
                    self._log.error("retries_exhausted", attempts=attempt, error=e.message)
                    raise RetriesExhaustedError(
                        command.executable,
                        command.call_args(request.arguments),
                        attempt,
                        e,
                    ) from e

                self._log.warning(
                    "attempt_failed_will_retry",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    error=e.message,
                )
