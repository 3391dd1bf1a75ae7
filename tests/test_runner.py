"""Tests for the CliRunner facade."""

import sys
from unittest.mock import AsyncMock

import pytest

from cli_runner.config import Settings
from cli_runner.errors import CliExecutionError, RetriesExhaustedError
from cli_runner.execution.command import CommandResolver
from cli_runner.execution.executor import ProcessExecutor
from cli_runner.execution.retry import RetryPolicy
from cli_runner.execution.runner import CliRunner, retry_config_from_settings
from cli_runner.execution.types import Command, ExecutionResult, RetryConfig


@pytest.fixture
def settings() -> Settings:
    return Settings(
        executable=sys.executable,
        timeout_ms=5000,
        max_attempts=2,
        initial_delay_ms=0,
        max_delay_ms=0,
        retryable_exit_codes=[75],
    )


class TestRetryConfigFromSettings:
    def test_copies_every_field(self, settings) -> None:
        config = retry_config_from_settings(settings)
        assert config == RetryConfig(
            max_attempts=2,
            initial_delay_ms=0,
            backoff_multiplier=2.0,
            max_delay_ms=0,
            retryable_exit_codes=frozenset({75}),
        )


class TestBuildRequest:
    def test_defaults_from_settings(self, settings) -> None:
        runner = CliRunner(settings)
        request = runner.build_request(["-p", "hi"])
        assert request.arguments == ["-p", "hi"]
        assert request.timeout_ms == 5000
        assert request.retry.retryable_exit_codes == {75}
        assert request.env_overrides == {}

    def test_explicit_values_win(self, settings) -> None:
        runner = CliRunner(settings)
        retry = RetryConfig(max_attempts=1)
        request = runner.build_request(
            ["x"],
            timeout_ms=100,
            working_directory="/tmp",
            env_overrides={"A": None},
            retry=retry,
        )
        assert request.timeout_ms == 100
        assert request.working_directory == "/tmp"
        assert request.env_overrides == {"A": None}
        assert request.retry is retry

    def test_api_key_reinjected(self, settings) -> None:
        runner = CliRunner(settings)
        request = runner.build_request(["-p", "hi"], env_overrides={"A": "1"}, api_key="k-123")
        assert request.env_overrides == {"A": "1", "GEMINI_API_KEY": "k-123"}

    def test_no_api_key_no_override(self, settings) -> None:
        request = CliRunner(settings).build_request(["-p", "hi"], api_key=None)
        assert "GEMINI_API_KEY" not in request.env_overrides


class TestWiring:
    def test_collaborators_built_from_settings(self) -> None:
        settings = Settings(
            executable="tool",
            fallback_launcher="pipx",
            fallback_package="tool-pkg",
            grace_period_s=0.5,
            working_dir="/srv",
        )
        runner = CliRunner(settings)
        assert runner.resolver.executable == "tool"
        assert runner.resolver.fallback_launcher == "pipx"
        assert runner.resolver.fallback_args == ("tool-pkg",)
        assert runner.executor.grace_period_s == 0.5
        assert runner.executor.working_dir_fallback == "/srv"
        assert runner.retry_policy.executor is runner.executor

    async def test_allow_fallback_defaults_to_settings(self) -> None:
        resolver = CommandResolver("missing-tool", probe=lambda name: None)
        runner = CliRunner(Settings(allow_fallback=True), resolver=resolver)
        command = await runner.resolve_command()
        assert command.executable == "npx"

    async def test_allow_fallback_argument_overrides(self) -> None:
        resolver = CommandResolver("missing-tool", probe=lambda name: None)
        runner = CliRunner(Settings(allow_fallback=True), resolver=resolver)
        command = await runner.resolve_command(allow_fallback=False)
        assert command == Command("missing-tool")

    async def test_run_goes_through_retry_policy(self, settings) -> None:
        policy = AsyncMock(spec=RetryPolicy)
        policy.execute_with_retry.return_value = ExecutionResult("ok", "", 0)
        runner = CliRunner(settings, retry_policy=policy)

        result = await runner.run(runner.build_request(["-V"]))

        assert result.stdout == "ok"
        command, request = policy.execute_with_retry.await_args.args
        assert command.executable == sys.executable
        assert request.arguments == ["-V"]


class TestEndToEnd:
    async def test_run_real_process(self, settings) -> None:
        runner = CliRunner(settings)
        result = await runner.run(runner.build_request(["-c", "print('hello')"]))
        assert result.stdout == "hello\n"

    async def test_run_retries_transient_exit(self, settings, tmp_path) -> None:
        """First attempt exits 75, second succeeds."""
        marker = tmp_path / "attempted"
        code = (
            "import os, sys\n"
            f"p = {str(marker)!r}\n"
            "if not os.path.exists(p):\n"
            "    open(p, 'w').close()\n"
            "    sys.exit(75)\n"
            "print('second')\n"
        )
        runner = CliRunner(settings)
        result = await runner.run(runner.build_request(["-c", code]))
        assert result.stdout == "second\n"

    async def test_run_exhausts(self, settings) -> None:
        runner = CliRunner(settings)
        with pytest.raises(RetriesExhaustedError) as exc_info:
            await runner.run(runner.build_request(["-c", "raise SystemExit(75)"]))
        assert exc_info.value.attempts == 2

    async def test_stream_is_not_retried(self, settings) -> None:
        executor = ProcessExecutor()
        spy = AsyncMock(wraps=executor.execute_streaming)
        executor.execute_streaming = spy
        runner = CliRunner(settings, executor=executor)

        handle = await runner.stream(runner.build_request(["-c", "raise SystemExit(75)"]))
        with pytest.raises(CliExecutionError):
            async for _line in handle:
                pass
        assert spy.await_count == 1
