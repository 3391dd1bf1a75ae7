"""Async subprocess executor for wrapped CLI invocations.

Handles subprocess lifecycle, stderr classification, per-attempt timeout
(SIGTERM -> grace period -> SIGKILL on the whole process group), and live
output streaming as an async iterator.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import time
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field

import structlog

from cli_runner.errors import CliExecutionError, CliSpawnError, CliTimeoutError
from cli_runner.execution.environment import (
    DENYLISTED_KEYS,
    build_environment,
    mask_for_logging,
    resolve_working_directory,
)
from cli_runner.execution.types import (
    Command,
    ExecutionRequest,
    ExecutionResult,
    LogSink,
    OutputLine,
    OutputPolicy,
    StreamName,
)

log = structlog.get_logger()

# Per-line buffer limit for stream readers (default asyncio limit is 64 KiB)
_STREAM_LIMIT = 1024 * 1024
_READ_CHUNK = 64 * 1024


async def _iter_lines(stream: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield complete lines (newline included) of any length until EOF.

    ``readline`` gives up on lines longer than the reader limit; this keeps
    reading the overlong line in pieces and yields it whole.
    """
    pending = bytearray()
    while True:
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            pending += e.partial
            if pending:
                yield bytes(pending)
            return
        except asyncio.LimitOverrunError as e:
            pending += await stream.readexactly(e.consumed)
            continue
        pending += chunk
        yield bytes(pending)
        pending.clear()


def normalize_exit_code(code: int) -> int:
    """Map a signal death (negative return code) to ``128 + signum``."""
    if code < 0:
        return 128 + (-code)
    return code


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    # The child leads its own session, so its pid is the process group id
    with contextlib.suppress(ProcessLookupError, PermissionError):
        if hasattr(os, "killpg"):
            os.killpg(process.pid, sig)
        elif sig == getattr(signal, "SIGKILL", None):
            process.kill()
        else:
            process.terminate()


async def _terminate(process: asyncio.subprocess.Process, grace_period_s: float) -> None:
    """SIGTERM the process group, escalating to SIGKILL after the grace period."""
    if process.returncode is None:
        _signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=grace_period_s)
        except TimeoutError:
            log.warning("process_kill", pid=process.pid, grace_period_s=grace_period_s)
            _signal_group(process, getattr(signal, "SIGKILL", signal.SIGTERM))
            await process.wait()
    else:
        # Leader is gone but descendants may still hold the pipes open
        _signal_group(process, getattr(signal, "SIGKILL", signal.SIGTERM))


async def _reap(
    process: asyncio.subprocess.Process,
    readers: Sequence[asyncio.Task[None]],
    grace_period_s: float,
) -> None:
    """Make sure neither the child nor its reader tasks outlive the attempt."""
    if process.returncode is None or any(not task.done() for task in readers):
        await _terminate(process, grace_period_s)
        # Let readers drain what the child wrote before it died
        pending = [task for task in readers if not task.done()]
        if pending:
            await asyncio.wait(pending, timeout=grace_period_s)
    for task in readers:
        if not task.done():
            task.cancel()
    await asyncio.gather(*readers, return_exceptions=True)


@dataclass
class ProcessExecutor:
    """Runs one subprocess per attempt with a hard per-attempt timeout.

    Usage::

        executor = ProcessExecutor()
        result = await executor.execute(
            Command("/usr/bin/gemini"),
            ExecutionRequest(arguments=["-p", "hello"], timeout_ms=60000),
        )
    """

    output_policy: OutputPolicy = field(default_factory=OutputPolicy)

    # Seconds between SIGTERM and SIGKILL on timeout
    grace_period_s: float = 2.0

    # Working directory used when the request doesn't name one
    working_dir_fallback: str | None = None

    env_denylist: tuple[str, ...] = DENYLISTED_KEYS

    # Starting environment; None means os.environ
    base_env: Mapping[str, str] | None = None

    logger: LogSink | None = field(default=None, repr=False)

    @property
    def _log(self) -> LogSink:
        return self.logger if self.logger is not None else log

    async def execute(self, command: Command, request: ExecutionRequest) -> ExecutionResult:
        """Run the command to completion and buffer its output.

        Raises:
            CliSpawnError: The process could not be started.
            CliTimeoutError: The attempt exceeded ``request.timeout_ms``.
            CliExecutionError: The process exited with a nonzero code.
        """
        call_args = command.call_args(request.arguments)
        start = time.monotonic()
        process = await self._spawn(command, request, mode="buffered")

        stdout_chunks: list[bytes] = []
        stderr_lines: list[str] = []
        readers = [
            asyncio.create_task(self._read_stdout(process.stdout, stdout_chunks)),
            asyncio.create_task(self._read_stderr(process.stderr, stderr_lines)),
        ]

        timed_out = False
        exit_code: int | None = None
        try:
            exit_code = await asyncio.wait_for(
                self._complete(process, readers), timeout=request.timeout_ms / 1000
            )
        except TimeoutError:
            timed_out = True
            self._log.error(
                "command_timeout",
                command=command.executable,
                args=call_args,
                timeout_ms=request.timeout_ms,
            )
        finally:
            await _reap(process, readers, self.grace_period_s)

        stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace")
        stderr = "".join(stderr_lines)
        duration = time.monotonic() - start

        if timed_out or exit_code is None:
            raise CliTimeoutError(
                command.executable,
                call_args,
                request.timeout_ms,
                stdout=stdout,
                stderr=stderr,
            )

        self._log.info(
            "command_exited",
            command=command.executable,
            exit_code=exit_code,
            duration_s=round(duration, 3),
            stdout_bytes=len(stdout),
        )
        if exit_code != 0:
            raise CliExecutionError(command.executable, call_args, exit_code, stdout, stderr)

        return ExecutionResult(
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_s=duration,
            command=command.argv(request.arguments),
        )

    async def execute_streaming(
        self, command: Command, request: ExecutionRequest
    ) -> StreamingExecution:
        """Start the command and hand back a live output handle.

        The caller consumes the handle with ``async for``; see
        :class:`StreamingExecution` for completion and error signaling.

        Raises:
            CliSpawnError: The process could not be started.
        """
        process = await self._spawn(command, request, mode="streaming")
        return StreamingExecution(
            process,
            command=command,
            arguments=request.arguments,
            timeout_ms=request.timeout_ms,
            output_policy=self.output_policy,
            grace_period_s=self.grace_period_s,
            logger=self._log,
        )

    async def _spawn(
        self, command: Command, request: ExecutionRequest, *, mode: str
    ) -> asyncio.subprocess.Process:
        argv = command.argv(request.arguments)
        cwd = resolve_working_directory(request.working_directory, self.working_dir_fallback)
        env = build_environment(
            request.env_overrides, base_env=self.base_env, denylist=self.env_denylist
        )

        self._log.info(
            "command_started",
            mode=mode,
            command=command.executable,
            args=argv[1:],
            cwd=cwd,
            timeout_ms=request.timeout_ms,
        )
        self._log.debug("command_environment", env=mask_for_logging(env))

        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                limit=_STREAM_LIMIT,
            )
        except OSError as e:
            self._log.error(
                "command_spawn_failed",
                command=command.executable,
                args=argv[1:],
                error=str(e),
            )
            raise CliSpawnError(command.executable, argv[1:], e) from e

    @staticmethod
    async def _complete(
        process: asyncio.subprocess.Process, readers: Sequence[asyncio.Task[None]]
    ) -> int:
        code = await process.wait()
        await asyncio.gather(*readers)
        return normalize_exit_code(code)

    async def _read_stdout(self, stream: asyncio.StreamReader | None, chunks: list[bytes]) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            chunks.append(chunk)

    async def _read_stderr(self, stream: asyncio.StreamReader | None, lines: list[str]) -> None:
        """Collect stderr lines, demoting informational banners to debug logs."""
        if stream is None:
            return
        async for raw in _iter_lines(stream):
            text = raw.decode("utf-8", errors="replace")
            if not text.strip():
                lines.append(text)
                continue
            if self.output_policy.is_info_message(text):
                self._log.debug("stderr_info", line=text.rstrip())
                continue
            self._log.warning("stderr_output", line=text.rstrip())
            lines.append(text)


class StreamingExecution:
    """Live output of one running invocation.

    Iterate with ``async for line in handle`` to receive :class:`OutputLine`
    values as they arrive. Iteration ends normally when the process exits
    with code 0; otherwise the final step raises :class:`CliExecutionError`
    or :class:`CliTimeoutError`. A consumer that stops early should call
    :meth:`terminate` (or use the handle as an async context manager) so the
    child doesn't outlive the read loop.

    Usage::

        async with await executor.execute_streaming(command, request) as handle:
            async for line in handle:
                print(line.stream, line.text)
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        *,
        command: Command,
        arguments: Sequence[str],
        timeout_ms: int,
        output_policy: OutputPolicy,
        grace_period_s: float,
        logger: LogSink,
    ) -> None:
        self._process = process
        self.command = command
        self.call_args = command.call_args(arguments)
        self.timeout_ms = timeout_ms
        self._policy = output_policy
        self._grace_period_s = grace_period_s
        self._log = logger

        loop = asyncio.get_running_loop()
        self._deadline = loop.time() + timeout_ms / 1000
        self._queue: asyncio.Queue[OutputLine | None] = asyncio.Queue()
        self._stdout: list[str] = []
        self._stderr: list[str] = []
        self._consumed = False
        self._readers = [
            asyncio.create_task(self._pump(process.stdout, "stdout")),
            asyncio.create_task(self._pump(process.stderr, "stderr")),
        ]

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        code = self._process.returncode
        return None if code is None else normalize_exit_code(code)

    async def __aenter__(self) -> StreamingExecution:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.terminate()

    def __aiter__(self) -> AsyncIterator[OutputLine]:
        if self._consumed:
            raise RuntimeError("streaming output can only be iterated once")
        self._consumed = True
        return self._iterate()

    async def wait(self) -> int:
        """Wait for exit within the remaining time budget and return the exit code.

        Output not yet consumed is discarded.

        Raises:
            CliTimeoutError: The time budget ran out first.
        """
        try:
            code = await asyncio.wait_for(self._process.wait(), timeout=self._remaining())
        except TimeoutError:
            await self._expire()
        await _reap(self._process, self._readers, self._grace_period_s)
        return normalize_exit_code(code)

    async def terminate(self) -> None:
        """Stop the child (and its process group) and release reader tasks."""
        await _reap(self._process, self._readers, self._grace_period_s)

    async def _iterate(self) -> AsyncIterator[OutputLine]:
        open_streams = len(self._readers)
        try:
            while open_streams:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self._remaining())
                except TimeoutError:
                    await self._expire()
                if item is None:
                    open_streams -= 1
                    continue
                yield item

            # A reader that failed must not look like a clean end of output
            await asyncio.gather(*self._readers)

            try:
                code = await asyncio.wait_for(self._process.wait(), timeout=self._remaining())
            except TimeoutError:
                await self._expire()

            exit_code = normalize_exit_code(code)
            self._log.info(
                "command_exited",
                mode="streaming",
                command=self.command.executable,
                exit_code=exit_code,
            )
            if exit_code != 0:
                raise CliExecutionError(
                    self.command.executable,
                    self.call_args,
                    exit_code,
                    "".join(self._stdout),
                    "".join(self._stderr),
                )
        finally:
            await _reap(self._process, self._readers, self._grace_period_s)

    def _remaining(self) -> float:
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    async def _expire(self) -> None:
        self._log.error(
            "command_timeout",
            mode="streaming",
            command=self.command.executable,
            args=self.call_args,
            timeout_ms=self.timeout_ms,
        )
        await _reap(self._process, self._readers, self._grace_period_s)
        raise CliTimeoutError(
            self.command.executable,
            self.call_args,
            self.timeout_ms,
            stdout="".join(self._stdout),
            stderr="".join(self._stderr),
        )

    async def _pump(self, stream: asyncio.StreamReader | None, name: StreamName) -> None:
        try:
            if stream is None:
                return
            async for raw in _iter_lines(stream):
                text = raw.decode("utf-8", errors="replace")
                info = name == "stderr" and bool(text.strip()) and self._policy.is_info_message(text)
                if name == "stdout":
                    self._stdout.append(text)
                elif not info:
                    self._stderr.append(text)
                await self._queue.put(OutputLine(stream=name, text=text.rstrip("\r\n"), info=info))
        finally:
            self._queue.put_nowait(None)
