"""Tests for executable resolution and caching."""

import asyncio
import threading

import pytest

from cli_runner.execution.command import CommandResolver
from cli_runner.execution.types import Command


class CountingProbe:
    """shutil.which stand-in that counts calls and can block."""

    def __init__(self, result: str | None, delay: float = 0.0) -> None:
        self.result = result
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, name: str) -> str | None:
        with self._lock:
            self.calls += 1
        if self.delay:
            threading.Event().wait(self.delay)
        return self.result


class TestResolve:
    async def test_found_on_path(self) -> None:
        resolver = CommandResolver("gemini", probe=CountingProbe("/usr/local/bin/gemini"))
        command = await resolver.resolve()
        assert command == Command("/usr/local/bin/gemini")
        assert command.base_args == ()

    async def test_found_ignores_fallback_flag(self) -> None:
        resolver = CommandResolver("gemini", probe=CountingProbe("/usr/bin/gemini"))
        assert (await resolver.resolve(allow_fallback=True)).executable == "/usr/bin/gemini"

    async def test_fallback_when_missing(self) -> None:
        resolver = CommandResolver(
            "gemini",
            fallback_launcher="npx",
            fallback_args=["@google/gemini-cli"],
            probe=CountingProbe(None),
        )
        command = await resolver.resolve(allow_fallback=True)
        assert command == Command("npx", ("@google/gemini-cli",))

    async def test_bare_name_without_fallback(self) -> None:
        """Without fallback the bare name is returned so spawning fails later."""
        resolver = CommandResolver("gemini", probe=CountingProbe(None))
        assert await resolver.resolve() == Command("gemini")

    async def test_probe_exception_treated_as_missing(self) -> None:
        def broken(name: str) -> str | None:
            raise OSError("PATH unreadable")

        resolver = CommandResolver("gemini", probe=broken)
        assert await resolver.resolve() == Command("gemini")


class TestCaching:
    async def test_second_call_uses_cache(self) -> None:
        probe = CountingProbe("/usr/bin/gemini")
        resolver = CommandResolver(probe=probe)

        first = await resolver.resolve()
        second = await resolver.resolve()

        assert first is second
        assert probe.calls == 1
        assert resolver.cached is first

    async def test_concurrent_first_callers_share_probe(self) -> None:
        """Ten callers racing on an empty cache trigger exactly one probe."""
        probe = CountingProbe("/usr/bin/gemini", delay=0.1)
        resolver = CommandResolver(probe=probe)

        results = await asyncio.gather(*(resolver.resolve() for _ in range(10)))

        assert probe.calls == 1
        assert all(result is results[0] for result in results)

    async def test_re_resolve_with_fallback_does_not_reprobe(self) -> None:
        probe = CountingProbe(None)
        resolver = CommandResolver(probe=probe)

        strict = await resolver.resolve(allow_fallback=False)
        relaxed = await resolver.resolve(allow_fallback=True)

        assert strict.executable == "gemini"
        assert relaxed.executable == "npx"
        assert probe.calls == 1
        assert resolver.cached is relaxed

    async def test_clear_forces_new_probe(self) -> None:
        probe = CountingProbe("/usr/bin/gemini")
        resolver = CommandResolver(probe=probe)

        await resolver.resolve()
        resolver.clear()
        assert resolver.cached is None
        await resolver.resolve()

        assert probe.calls == 2

    async def test_cancelled_waiter_does_not_cancel_probe(self) -> None:
        probe = CountingProbe("/usr/bin/gemini", delay=0.2)
        resolver = CommandResolver(probe=probe)

        doomed = asyncio.create_task(resolver.resolve())
        survivor = asyncio.create_task(resolver.resolve())
        await asyncio.sleep(0.05)
        doomed.cancel()

        assert (await survivor).executable == "/usr/bin/gemini"
        with pytest.raises(asyncio.CancelledError):
            await doomed
        assert probe.calls == 1

    def test_cached_starts_empty(self) -> None:
        assert CommandResolver(probe=CountingProbe(None)).cached is None
