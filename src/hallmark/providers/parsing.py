"""Pull structured changelog JSON out of raw backend output.

LLM command-line tools rarely return clean JSON: answers arrive wrapped in
markdown fences, surrounded by chatter, or inside the CLI's own envelope.
"""

from __future__ import annotations

import json
import logging

from hallmark.changelog import ChangelogOutput
from hallmark.providers.base import (
    ExecutionFailedError,
    InvalidJsonError,
    Provider,
)

logger = logging.getLogger(__name__)

_DECODER = json.JSONDecoder()


def extract_json(response: str) -> str:
    """Extract a JSON object from a response that may be wrapped in markdown.

    Tries, in order:
    1. a ```json fenced block
    2. a bare ``` fenced block whose body starts with '{'
    3. the first '{' that decodes as a JSON object (trailing text ignored)
    4. balanced-brace extraction that respects string literals
    Returns the trimmed input unchanged when nothing matches.
    """
    trimmed = (response or "").strip()

    start = trimmed.find("```json")
    if start != -1:
        body_start = start + len("```json")
        end = trimmed.find("```", body_start)
        if end != -1:
            return trimmed[body_start:end].strip()

    start = trimmed.find("```")
    if start != -1:
        end = trimmed.find("```", start + 3)
        if end != -1:
            inner = trimmed[start + 3:end].strip()
            if inner.startswith("{"):
                return inner

    found = _find_json_object(trimmed)
    if found is not None:
        return found
    return trimmed


def _find_json_object(text: str) -> str | None:
    index = text.find("{")
    while index != -1:
        candidate = text[index:]
        try:
            value, end = _DECODER.raw_decode(candidate)
        except json.JSONDecodeError:
            value, end = None, 0
        if isinstance(value, dict):
            return candidate[:end]

        balanced = _balanced_braces(candidate)
        if balanced is not None:
            try:
                json.loads(balanced)
            except json.JSONDecodeError:
                pass
            else:
                return balanced
        index = text.find("{", index + 1)
    return None


def _balanced_braces(text: str) -> str | None:
    """Return the prefix of ``text`` up to the brace closing its first '{'."""
    depth = 0
    in_string = False
    escape_next = False
    for idx, ch in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if ch == "\\" and in_string:
            escape_next = True
        elif ch == '"':
            in_string = not in_string
        elif ch == "{" and not in_string:
            depth += 1
        elif ch == "}" and not in_string:
            depth -= 1
            if depth == 0:
                return text[: idx + 1]
    return None


def unwrap_claude_envelope(response: str) -> str:
    """Return the ``result`` text from Claude's ``--output-format json`` envelope.

    Falls back to brace extraction when hook output is interleaved with the
    envelope, and to the raw response when there is no envelope at all.
    Raises ExecutionFailedError when the envelope reports ``is_error``.
    """
    for candidate in (response, extract_json(response)):
        try:
            envelope = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if not isinstance(envelope, dict) or not isinstance(envelope.get("result"), str):
            continue
        if envelope.get("is_error"):
            raise ExecutionFailedError(Provider.CLAUDE, envelope["result"])
        return envelope["result"]

    logger.warning(
        "Could not parse Claude CLI envelope; treating output as raw response. "
        "Run 'claude --version' to check for a CLI version mismatch."
    )
    return response


def parse_changelog_output(provider: Provider, content: str) -> ChangelogOutput:
    """Decode ``content`` into a ChangelogOutput or raise InvalidJsonError."""
    try:
        return ChangelogOutput.from_dict(json.loads(content))
    except ValueError:
        pass

    extracted = extract_json(content)
    try:
        data = json.loads(extracted)
    except json.JSONDecodeError as e:
        raise InvalidJsonError(provider, f"Failed to parse: {e}", content) from e
    try:
        return ChangelogOutput.from_dict(data)
    except ValueError as e:
        raise InvalidJsonError(provider, f"Unexpected schema: {e}", content) from e
