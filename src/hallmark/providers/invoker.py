"""Spawn one backend CLI, bounded by a timeout, and parse what it prints.

Claude is driven as ``claude -p <prompt> --output-format json`` and its JSON
envelope is unwrapped; Codex as ``codex exec --output-schema <file> <prompt>``
with the changelog schema written to a temporary file.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import shutil
import tempfile
from collections.abc import Mapping

from hallmark.changelog import ChangelogOutput
from hallmark.config import ProviderConfig
from hallmark.providers.base import (
    NonZeroExitError,
    NotInstalledError,
    Provider,
    ProviderTimeoutError,
    SpawnFailedError,
)
from hallmark.providers.parsing import parse_changelog_output, unwrap_claude_envelope
from hallmark.utils.latency import timed_block

logger = logging.getLogger(__name__)

VERSION_CHECK_TIMEOUT_SECONDS = 15

CHANGELOG_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "entries": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "category": {
                        "type": "string",
                        "enum": [
                            "Added", "Changed", "Deprecated",
                            "Removed", "Fixed", "Security",
                        ],
                    },
                    "description": {"type": "string"},
                },
                "required": ["category", "description"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["entries"],
    "additionalProperties": False,
}


class ProviderInvoker:
    """Runs backend CLIs as subprocesses. Stateless apart from configuration."""

    def __init__(
        self,
        config: ProviderConfig | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ):
        self._config = config or ProviderConfig()
        self._environ = environ if environ is not None else os.environ

    def command_for(self, provider: Provider) -> str:
        if provider is Provider.CLAUDE:
            return self._config.claude_command or provider.default_command
        return self._config.codex_command or provider.default_command

    def resolve_timeout(self, provider: Provider) -> float:
        """Configured timeout, overridden by the provider's environment variable.

        Empty, non-numeric, or non-positive overrides are ignored with a warning.
        """
        default = float(self._config.timeout_seconds)
        env_name = (
            self._config.claude_timeout_env
            if provider is Provider.CLAUDE
            else self._config.codex_timeout_env
        )
        raw = str(self._environ.get(env_name, "") or "").strip()
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError:
            value = 0.0
        if value <= 0:
            logger.warning(
                "Invalid %s value %r, using default %ss", env_name, raw, default,
            )
            return default
        return value

    async def check_installed(self, provider: Provider) -> None:
        """Raise NotInstalledError unless the CLI is on PATH and answers --version."""
        command = self.command_for(provider)
        executable = shutil.which(command)
        if executable is None:
            raise NotInstalledError(provider, command)
        try:
            await self._run(
                provider, executable, ["--version"], VERSION_CHECK_TIMEOUT_SECONDS,
            )
        except NonZeroExitError as e:
            raise NotInstalledError(provider, command) from e

    async def invoke(
        self,
        provider: Provider,
        prompt: str,
        timeout: float | None = None,
    ) -> ChangelogOutput:
        """Generate changelog entries with one backend call."""
        if provider is Provider.CLAUDE:
            content = unwrap_claude_envelope(
                await self._invoke_text(provider, prompt, timeout, structured=True)
            )
        else:
            content = await self._invoke_text(provider, prompt, timeout, structured=True)
        return parse_changelog_output(provider, content)

    async def invoke_raw(
        self,
        provider: Provider,
        prompt: str,
        timeout: float | None = None,
    ) -> str:
        """Free-form generation: the Claude envelope is unwrapped, nothing else."""
        output = await self._invoke_text(provider, prompt, timeout, structured=False)
        if provider is Provider.CLAUDE:
            return unwrap_claude_envelope(output)
        return output

    async def _invoke_text(
        self,
        provider: Provider,
        prompt: str,
        timeout: float | None,
        *,
        structured: bool,
    ) -> str:
        if not prompt or not prompt.strip():
            raise ValueError("prompt must be non-empty")
        effective_timeout = timeout if timeout is not None else self.resolve_timeout(provider)
        if effective_timeout <= 0:
            raise ValueError("timeout must be positive")

        command = self.command_for(provider)
        executable = shutil.which(command)
        if executable is None:
            raise NotInstalledError(provider, command)

        if provider is Provider.CLAUDE:
            args = ["-p", prompt, "--output-format", "json"]
            return await self._run(provider, executable, args, effective_timeout)

        if not structured:
            return await self._run(
                provider, executable, ["exec", prompt], effective_timeout,
            )

        schema_path = _write_schema_file()
        try:
            args = ["exec", "--output-schema", schema_path, prompt]
            return await self._run(provider, executable, args, effective_timeout)
        finally:
            with contextlib.suppress(OSError):
                os.unlink(schema_path)

    async def _run(
        self,
        provider: Provider,
        executable: str,
        args: list[str],
        timeout: float,
    ) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise NotInstalledError(provider, executable) from e
        except OSError as e:
            raise SpawnFailedError(provider, str(e)) from e

        try:
            with timed_block(
                logger,
                event="provider_invoke",
                fields={"provider": provider.value},
            ):
                stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            await _terminate(proc)
            raise ProviderTimeoutError(provider, timeout) from None
        except asyncio.CancelledError:
            await _terminate(proc)
            raise

        if proc.returncode != 0:
            code = proc.returncode if proc.returncode is not None else -1
            raise NonZeroExitError(
                provider, code, stderr.decode("utf-8", errors="replace"),
            )
        return stdout.decode("utf-8", errors="replace")


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    """Kill the child and reap it so it does not outlive the call."""
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
    await proc.wait()


def _write_schema_file() -> str:
    with tempfile.NamedTemporaryFile(
        "w", suffix=".json", prefix="hallmark-schema-", delete=False, encoding="utf-8",
    ) as handle:
        json.dump(CHANGELOG_SCHEMA, handle)
        return handle.name
