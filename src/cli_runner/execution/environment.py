"""Execution environment builder for wrapped CLI invocations.

Standardizes env var scrubbing and override handling for every subprocess
the runner starts, and provides a masked view of the result for logging.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping

# Keys removed from child environments; they change how the wrapped tool behaves
# (IDE integration hooks, implicit API key auth instead of the tool's own login).
DENYLISTED_KEYS = (
    "GEMINI_CLI_IDE_SERVER_PORT",
    "GEMINI_CLI_IDE_WORKSPACE_PATH",
    "ENABLE_IDE_INTEGRATION",
    "GEMINI_API_KEY",
)

# Keys whose values never appear in logs
SENSITIVE_KEYS = (
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "CLI_RUNNER_API_KEY",
)

MASK = "[MASKED]"


def build_environment(
    overrides: Mapping[str, str | None] | None = None,
    *,
    base_env: Mapping[str, str] | None = None,
    denylist: Iterable[str] = DENYLISTED_KEYS,
) -> dict[str, str]:
    """Build a scrubbed environment dict for a subprocess call.

    Starts from ``base_env`` (defaults to the current process env), strips
    denylisted keys, then applies ``overrides``: a string value sets the key,
    ``None`` removes it.

    Args:
        overrides: Per-call changes, applied last (highest precedence).
        base_env: Starting environment (defaults to ``os.environ``).
        denylist: Keys removed before overrides are applied.

    Returns:
        Environment dict safe for subprocess execution.
    """
    env = dict(base_env if base_env is not None else os.environ)

    for key in denylist:
        env.pop(key, None)

    if overrides:
        for key, value in overrides.items():
            if value is None:
                env.pop(key, None)
            else:
                env[key] = value

    return env


def mask_for_logging(
    env: Mapping[str, str],
    *,
    sensitive_keys: Iterable[str] = SENSITIVE_KEYS,
) -> dict[str, str]:
    """Return a copy of ``env`` with sensitive values replaced by ``[MASKED]``."""
    masked = dict(env)
    for key in sensitive_keys:
        if key in masked:
            masked[key] = MASK
    return masked


def resolve_working_directory(requested: str | None = None, fallback: str | None = None) -> str:
    """Pick the child's working directory: requested, then fallback, then cwd."""
    return requested or fallback or os.getcwd()


def env_from_api_key(api_key: str | None, *, key_name: str = "GEMINI_API_KEY") -> dict[str, str]:
    """Overrides that re-inject an explicit API key after scrubbing."""
    if not api_key:
        return {}
    return {key_name: api_key}
