"""Shared test fixtures for Hallmark."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from hallmark.config import Config, ProviderConfig, RetryConfig
from hallmark.providers.retry import RetryPolicy

SAMPLE_OUTPUT = {
    "entries": [
        {"category": "Added", "description": "Implemented full OAuth2 flow"},
    ],
}


def claude_envelope(result: str, *, is_error: bool = False) -> str:
    return json.dumps({"type": "result", "result": result, "is_error": is_error})


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write an executable shell script into a private bin directory."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)

    def _make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def fake_claude(make_script) -> Path:
    """A claude CLI that answers with one entry inside its JSON envelope."""
    envelope = claude_envelope(json.dumps(SAMPLE_OUTPUT))
    return make_script(
        "claude",
        f"if [ \"$1\" = \"--version\" ]; then echo 'claude 1.0.0'; exit 0; fi\n"
        f"cat <<'EOF'\n{envelope}\nEOF",
    )


@pytest.fixture
def fake_codex(make_script) -> Path:
    """A codex CLI that requires a readable --output-schema file."""
    return make_script(
        "codex",
        "if [ \"$1\" = \"--version\" ]; then echo 'codex 0.1.0'; exit 0; fi\n"
        "if [ \"$2\" != \"--output-schema\" ] || [ ! -f \"$3\" ]; then\n"
        "  echo 'missing schema' >&2; exit 3\n"
        "fi\n"
        f"cat <<'EOF'\n{json.dumps(SAMPLE_OUTPUT)}\nEOF",
    )


@pytest.fixture
def provider_config(fake_claude: Path, fake_codex: Path) -> ProviderConfig:
    return ProviderConfig(
        claude_command=str(fake_claude),
        codex_command=str(fake_codex),
        timeout_seconds=10,
    )


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Three attempts with no sleeping between them."""
    return RetryPolicy(max_retries=2, base_delay_seconds=0.0, max_delay_seconds=0.0)


@pytest.fixture
def config(provider_config: ProviderConfig) -> Config:
    return Config(
        providers=provider_config,
        retry=RetryConfig(max_retries=0, base_delay_seconds=0.0, max_delay_seconds=0.0),
    )


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """A small repository with one half-finished feature."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "auth.py").write_text(
        "def start_oauth2_flow(client):\n"
        "    # TODO: handle OAuth2 token refresh\n"
        "    return client.authorize()\n"
    )
    (root / "src" / "templates.py").write_text(
        "REPORT_TEMPLATES = [\n"
        "    \"weekly\",\n"
        "    \"monthly\",\n"
        "    \"yearly\",\n"
        "]\n"
    )
    (root / "node_modules").mkdir()
    (root / "node_modules" / "vendored.js").write_text("// TODO oauth2 vendored\n")
    (root / "pyproject.toml").write_text("[project]\nname = \"sample\"\n")
    return root

