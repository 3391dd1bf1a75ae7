"""Tests for child environment construction."""

import os

from cli_runner.execution.environment import (
    DENYLISTED_KEYS,
    MASK,
    build_environment,
    env_from_api_key,
    mask_for_logging,
    resolve_working_directory,
)


class TestBuildEnvironment:
    def test_denylisted_keys_removed(self) -> None:
        base = {key: "set" for key in DENYLISTED_KEYS} | {"HOME": "/home/me"}
        env = build_environment(base_env=base)
        assert env == {"HOME": "/home/me"}

    def test_overrides_set_and_delete(self) -> None:
        base = {"A": "1", "B": "2"}
        env = build_environment({"B": None, "C": "3"}, base_env=base)
        assert env == {"A": "1", "C": "3"}

    def test_override_wins_over_denylist(self) -> None:
        """An explicit override re-injects a key the denylist removed."""
        base = {"GEMINI_API_KEY": "inherited"}
        env = build_environment({"GEMINI_API_KEY": "explicit"}, base_env=base)
        assert env["GEMINI_API_KEY"] == "explicit"

    def test_custom_denylist(self) -> None:
        env = build_environment(base_env={"X": "1", "GEMINI_API_KEY": "k"}, denylist=["X"])
        assert env == {"GEMINI_API_KEY": "k"}

    def test_defaults_to_process_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("CLI_RUNNER_TEST_MARKER", "present")
        monkeypatch.setenv("ENABLE_IDE_INTEGRATION", "true")
        env = build_environment()
        assert env["CLI_RUNNER_TEST_MARKER"] == "present"
        assert "ENABLE_IDE_INTEGRATION" not in env
        assert os.environ["ENABLE_IDE_INTEGRATION"] == "true"

    def test_base_env_not_mutated(self) -> None:
        base = {"GEMINI_API_KEY": "k", "A": "1"}
        build_environment({"A": None}, base_env=base)
        assert base == {"GEMINI_API_KEY": "k", "A": "1"}


class TestMaskForLogging:
    def test_sensitive_values_masked(self) -> None:
        masked = mask_for_logging({"OPENAI_API_KEY": "sk-123", "PATH": "/bin"})
        assert masked == {"OPENAI_API_KEY": MASK, "PATH": "/bin"}

    def test_input_untouched(self) -> None:
        env = {"GOOGLE_API_KEY": "secret"}
        mask_for_logging(env)
        assert env["GOOGLE_API_KEY"] == "secret"

    def test_runner_api_key_masked(self) -> None:
        assert mask_for_logging({"CLI_RUNNER_API_KEY": "k"}) == {"CLI_RUNNER_API_KEY": MASK}


class TestWorkingDirectory:
    def test_requested_first(self) -> None:
        assert resolve_working_directory("/tmp/a", "/tmp/b") == "/tmp/a"

    def test_fallback_second(self) -> None:
        assert resolve_working_directory(None, "/tmp/b") == "/tmp/b"

    def test_process_cwd_last(self, tmp_path, monkeypatch) -> None:
        monkeypatch.chdir(tmp_path)
        assert resolve_working_directory() == os.getcwd()


def test_env_from_api_key() -> None:
    assert env_from_api_key("abc") == {"GEMINI_API_KEY": "abc"}
    assert env_from_api_key("abc", key_name="GOOGLE_API_KEY") == {"GOOGLE_API_KEY": "abc"}
    assert env_from_api_key(None) == {}
    assert env_from_api_key("") == {}
