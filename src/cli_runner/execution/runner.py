"""High-level entry point wiring resolver, executor and retry policy together."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from cli_runner.config import Settings
from cli_runner.execution.command import CommandResolver
from cli_runner.execution.environment import env_from_api_key
from cli_runner.execution.executor import ProcessExecutor, StreamingExecution
from cli_runner.execution.retry import RetryPolicy
from cli_runner.execution.types import (
    Command,
    ExecutionRequest,
    ExecutionResult,
    OutputPolicy,
    RetryConfig,
)


def retry_config_from_settings(settings: Settings) -> RetryConfig:
    """Build the default retry config described by ``settings``."""
    return RetryConfig(
        max_attempts=settings.max_attempts,
        initial_delay_ms=settings.initial_delay_ms,
        backoff_multiplier=settings.backoff_multiplier,
        max_delay_ms=settings.max_delay_ms,
        retryable_exit_codes=frozenset(settings.retryable_exit_codes),
    )


class CliRunner:
    """Runs the wrapped tool according to :class:`Settings`.

    Collaborators are built from settings unless injected, so tests can
    supply a fresh resolver or a fake executor per case.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        resolver: CommandResolver | None = None,
        executor: ProcessExecutor | None = None,
        retry_policy: RetryPolicy | None = None,
        output_policy: OutputPolicy | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.resolver = resolver or CommandResolver(
            self.settings.executable,
            fallback_launcher=self.settings.fallback_launcher,
            fallback_args=[self.settings.fallback_package],
        )
        self.executor = executor or ProcessExecutor(
            output_policy=output_policy or OutputPolicy(),
            grace_period_s=self.settings.grace_period_s,
            working_dir_fallback=self.settings.working_dir,
        )
        self.retry_policy = retry_policy or RetryPolicy(self.executor)

    async def resolve_command(self, allow_fallback: bool | None = None) -> Command:
        if allow_fallback is None:
            allow_fallback = self.settings.allow_fallback
        return await self.resolver.resolve(allow_fallback)

    def build_request(
        self,
        arguments: Sequence[str],
        *,
        timeout_ms: int | None = None,
        working_directory: str | None = None,
        env_overrides: Mapping[str, str | None] | None = None,
        retry: RetryConfig | None = None,
        api_key: str | None = None,
    ) -> ExecutionRequest:
        """Fill an :class:`ExecutionRequest` with defaults from settings.

        ``api_key`` is re-injected as ``GEMINI_API_KEY`` after the ambient
        value has been scrubbed from the child environment.
        """
        return ExecutionRequest(
            arguments=list(arguments),
            timeout_ms=timeout_ms or self.settings.timeout_ms,
            working_directory=working_directory,
            env_overrides={**(env_overrides or {}), **env_from_api_key(api_key)},
            retry=retry or retry_config_from_settings(self.settings),
        )

    async def run(
        self, request: ExecutionRequest, *, allow_fallback: bool | None = None
    ) -> ExecutionResult:
        """Resolve the command and execute ``request`` with retries."""
        command = await self.resolve_command(allow_fallback)
        return await self.retry_policy.execute_with_retry(command, request)

    async def stream(
        self, request: ExecutionRequest, *, allow_fallback: bool | None = None
    ) -> StreamingExecution:
        """Resolve the command and start a streaming invocation.

        Streaming attempts are not retried: output has already reached the
        caller by the time a failure is known.
        """
        command = await self.resolve_command(allow_fallback)
        return await self.executor.execute_streaming(command, request)
