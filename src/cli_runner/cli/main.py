"""cli-runner command line.

Runs the wrapped tool with timeouts, retries and a scrubbed environment.
"""

from pathlib import Path

import typer

from cli_runner.cli.common import (
    ELECTRIC_PURPLE,
    NEON_CYAN,
    console,
    error,
    exit_code_for,
    info,
    parse_env_pairs,
    report_error,
    run_async,
    success,
)
from cli_runner.config import Settings, load_settings
from cli_runner.errors import CliError
from cli_runner.execution.arguments import chat_args, search_args, strip_json_fence
from cli_runner.execution.runner import CliRunner, retry_config_from_settings
from cli_runner.execution.types import ExecutionRequest, RetryConfig
from cli_runner.logging import configure_logging

app = typer.Typer(
    name="cli-runner",
    help="Run an external CLI tool with timeouts, retries and a scrubbed environment",
    no_args_is_help=True,
)


def _load(config_file: Path | None, allow_fallback: bool | None) -> Settings:
    settings = load_settings(config_file)
    if allow_fallback is not None:
        settings = settings.model_copy(update={"allow_fallback": allow_fallback})
    configure_logging(settings.log_level)
    return settings


async def _run_buffered(
    runner: CliRunner, request: ExecutionRequest, *, pretty_json: bool = False
) -> None:
    try:
        result = await runner.run(request)
    except CliError as e:
        report_error(e)
        raise typer.Exit(exit_code_for(e)) from None

    output = strip_json_fence(result.stdout) if pretty_json else result.stdout
    typer.echo(output, nl=not output.endswith("\n"))


async def _run_streaming(runner: CliRunner, request: ExecutionRequest) -> None:
    try:
        async with await runner.stream(request) as handle:
            async for line in handle:
                if line.info:
                    continue
                typer.echo(line.text, err=line.stream == "stderr")
    except CliError as e:
        report_error(e)
        raise typer.Exit(exit_code_for(e)) from None


@app.command()
@run_async
async def resolve(
    allow_fallback: bool | None = typer.Option(
        None,
        "--allow-fallback/--no-allow-fallback",
        help="Fall back to the launcher when the executable is not on PATH",
    ),
    config_file: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.config/cli-runner/config.yaml)",
    ),
) -> None:
    """Show the command that would be executed."""
    settings = _load(config_file, allow_fallback)
    runner = CliRunner(settings)
    command = await runner.resolve_command()
    success("Command resolved")
    console.print(f"  Tool: [{ELECTRIC_PURPLE}]{settings.executable}[/]")
    console.print(f"  Executable: [{NEON_CYAN}]{command.executable}[/]")
    if command.base_args:
        console.print(f"  Base args: [{NEON_CYAN}]{' '.join(command.base_args)}[/]")


@app.command(name="exec")
@run_async
async def exec_command(
    arguments: list[str] = typer.Argument(None, help="Arguments passed to the tool (after --)"),
    timeout_ms: int = typer.Option(None, "--timeout-ms", "-t", help="Per-attempt timeout"),
    cwd: str = typer.Option(None, "--cwd", help="Working directory for the tool"),
    env: list[str] = typer.Option(None, "--env", "-e", help="KEY=VALUE to set (repeatable)"),
    unset: list[str] = typer.Option(None, "--unset", help="Variable to remove (repeatable)"),
    retries: int = typer.Option(None, "--retries", "-r", help="Max attempts (overrides config)"),
    retry_exit_codes: list[int] = typer.Option(
        None, "--retry-exit-code", help="Exit code treated as transient (repeatable)"
    ),
    allow_fallback: bool | None = typer.Option(
        None,
        "--allow-fallback/--no-allow-fallback",
        help="Fall back to the launcher when the executable is not on PATH",
    ),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print output as it arrives"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to config file"),
) -> None:
    """Run the tool with ARGUMENTS."""
    settings = _load(config_file, allow_fallback)

    try:
        overrides = parse_env_pairs(env, unset)
    except ValueError as e:
        error(str(e))
        raise typer.Exit(2) from None

    retry = retry_config_from_settings(settings)
    if retries is not None or retry_exit_codes:
        retry = RetryConfig(
            max_attempts=retries if retries is not None else retry.max_attempts,
            initial_delay_ms=retry.initial_delay_ms,
            backoff_multiplier=retry.backoff_multiplier,
            max_delay_ms=retry.max_delay_ms,
            retryable_exit_codes=frozenset(retry_exit_codes or retry.retryable_exit_codes),
        )

    runner = CliRunner(settings)
    request = runner.build_request(
        arguments or [],
        timeout_ms=timeout_ms,
        working_directory=cwd,
        env_overrides=overrides,
        retry=retry,
    )
    if stream:
        await _run_streaming(runner, request)
    else:
        await _run_buffered(runner, request)


@app.command()
@run_async
async def chat(
    prompt: str = typer.Argument(..., help="Prompt sent to the tool"),
    model: str = typer.Option(None, "--model", "-m", help="Model name"),
    sandbox: bool = typer.Option(False, "--sandbox", help="Run the tool in its sandbox"),
    yolo: bool = typer.Option(False, "--yolo", help="Auto-accept the tool's prompts"),
    api_key: str = typer.Option(None, "--api-key", help="API key for the tool"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Print output as it arrives"),
    allow_fallback: bool | None = typer.Option(None, "--allow-fallback/--no-allow-fallback"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to config file"),
) -> None:
    """Send a single prompt to the tool."""
    settings = _load(config_file, allow_fallback)
    runner = CliRunner(settings)
    request = runner.build_request(
        chat_args(prompt, sandbox=sandbox, yolo=yolo, model=model),
        timeout_ms=settings.chat_timeout_ms,
        api_key=api_key or settings.api_key.get_secret_value() or None,
    )
    if stream:
        await _run_streaming(runner, request)
    else:
        await _run_buffered(runner, request)


@app.command()
@run_async
async def search(
    query: str = typer.Argument(..., help="Search query"),
    limit: int = typer.Option(None, "--limit", "-l", help="Maximum number of sources"),
    raw: bool = typer.Option(False, "--raw", help="Ask for structured JSON output"),
    model: str = typer.Option(None, "--model", "-m", help="Model name"),
    sandbox: bool = typer.Option(False, "--sandbox", help="Run the tool in its sandbox"),
    yolo: bool = typer.Option(False, "--yolo", help="Auto-accept the tool's prompts"),
    api_key: str = typer.Option(None, "--api-key", help="API key for the tool"),
    allow_fallback: bool | None = typer.Option(None, "--allow-fallback/--no-allow-fallback"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Path to config file"),
) -> None:
    """Run a web search through the tool."""
    settings = _load(config_file, allow_fallback)
    runner = CliRunner(settings)
    request = runner.build_request(
        search_args(query, limit=limit, raw=raw, sandbox=sandbox, yolo=yolo, model=model),
        timeout_ms=settings.search_timeout_ms,
        api_key=api_key or settings.api_key.get_secret_value() or None,
    )
    if raw:
        info("Requesting structured JSON output")
    await _run_buffered(runner, request, pretty_json=raw)


def main() -> None:
    """Main entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
