"""Command resolution for the wrapped CLI tool.

Locates the tool's executable once per resolver and builds the ``Command``
used for every invocation, with an optional launcher fallback (e.g. ``npx``)
when the executable is not installed.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Callable, Sequence

import structlog

from cli_runner.execution.types import Command

log = structlog.get_logger()

# Probe signature matches shutil.which: name -> absolute path or None
Probe = Callable[[str], str | None]


class CommandResolver:
    """Lazily resolves and caches the tool ``Command``.

    The PATH probe runs at most once. Concurrent first callers share one
    in-flight probe task; later callers read the cached outcome without
    suspending on anything but the already finished task.

    Example:
        >>> resolver = CommandResolver("gemini", fallback_launcher="npx",
        ...                            fallback_args=["@google/gemini-cli"])
        >>> command = await resolver.resolve(allow_fallback=True)
    """

    def __init__(
        self,
        executable: str = "gemini",
        *,
        fallback_launcher: str = "npx",
        fallback_args: Sequence[str] = ("@google/gemini-cli",),
        probe: Probe = shutil.which,
    ) -> None:
        self.executable = executable
        self.fallback_launcher = fallback_launcher
        self.fallback_args = tuple(fallback_args)
        self._probe = probe

        self._probed = False
        self._located: str | None = None
        self._inflight: asyncio.Task[str | None] | None = None
        self._commands: dict[bool, Command] = {}
        self._last: Command | None = None

    @property
    def cached(self) -> Command | None:
        """The most recently resolved command, if any."""
        return self._last

    async def resolve(self, allow_fallback: bool = False) -> Command:
        """Resolve the command to execute.

        Args:
            allow_fallback: Use the launcher fallback when the executable is
                not on PATH.

        Returns:
            The resolved path with no base args; the launcher fallback; or,
            when fallback is disallowed, the bare executable name so that the
            failure surfaces as a spawn error on first use.
        """
        located = await self._probe_once()

        command = self._commands.get(allow_fallback)
        if command is None:
            command = self._build(located, allow_fallback)
            self._commands[allow_fallback] = command
            log.debug(
                "command_resolved",
                executable=command.executable,
                base_args=list(command.base_args),
                allow_fallback=allow_fallback,
            )
        self._last = command
        return command

    def clear(self) -> None:
        """Forget the cached probe and commands."""
        log.debug("command_cache_cleared", executable=self.executable)
        self._probed = False
        self._located = None
        self._commands.clear()
        self._last = None

    async def _probe_once(self) -> str | None:
        if self._probed:
            return self._located
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._run_probe())
        # Shield so one cancelled waiter doesn't cancel the shared probe
        return await asyncio.shield(self._inflight)

    async def _run_probe(self) -> str | None:
        log.info("command_probe_started", executable=self.executable)
        try:
            located = await asyncio.to_thread(self._probe, self.executable)
        except Exception as e:
            log.warning("command_probe_failed", executable=self.executable, error=str(e))
            located = None
        finally:
            self._inflight = None

        if located:
            log.info("command_found", executable=self.executable, path=located)
        else:
            log.warning("command_not_found", executable=self.executable)

        self._located = located
        self._probed = True
        return located

    def _build(self, located: str | None, allow_fallback: bool) -> Command:
        if located:
            return Command(executable=located)
        if allow_fallback:
            log.info(
                "command_fallback",
                launcher=self.fallback_launcher,
                base_args=list(self.fallback_args),
            )
            return Command(executable=self.fallback_launcher, base_args=self.fallback_args)
        return Command(executable=self.executable)
