"""Argument builders for the wrapped tool's chat and search modes."""

from __future__ import annotations

import json
import re

_JSON_FENCE = re.compile(r"^```(?:json)?\s*\n|\n?```\s*$")


def _common_flags(*, sandbox: bool, yolo: bool, model: str | None) -> list[str]:
    flags: list[str] = []
    if sandbox:
        flags.append("-s")
    if yolo:
        flags.append("-y")
    if model:
        flags.extend(["-m", model])
    return flags


def chat_args(
    prompt: str,
    *,
    sandbox: bool = False,
    yolo: bool = False,
    model: str | None = None,
) -> list[str]:
    """Arguments for a one-shot prompt."""
    return ["-p", prompt, *_common_flags(sandbox=sandbox, yolo=yolo, model=model)]


def search_args(
    query: str,
    *,
    limit: int | None = None,
    raw: bool = False,
    sandbox: bool = False,
    yolo: bool = False,
    model: str | None = None,
) -> list[str]:
    """Arguments for a web search prompt.

    With ``raw`` the tool is asked for a single JSON object
    (``{"summary": ..., "sources": [...]}``) instead of prose.
    """
    if raw:
        limit_text = f" Limit to {limit} sources." if limit else ""
        prompt = (
            f'Perform a web search for "{query}". Synthesize the findings and provide a '
            "list of sources. Return the entire output as a single, valid JSON object with "
            'the following structure: { "summary": "...", "sources": [{ "url": "...", '
            '"title": "...", "snippet": "..." }] }.' + limit_text
        )
    else:
        prompt = f"Search for: {query}"
        if limit:
            prompt += f" (return up to {limit} results)"
    return ["-p", prompt, *_common_flags(sandbox=sandbox, yolo=yolo, model=model)]


def strip_json_fence(output: str) -> str:
    """Pretty-print JSON output, unwrapping a markdown code fence if present.

    Output that isn't valid JSON is returned unchanged.
    """
    candidate = _JSON_FENCE.sub("", output.strip()).strip()
    try:
        parsed = json.loads(candidate)
    except ValueError:
        return output
    return json.dumps(parsed, indent=2)
