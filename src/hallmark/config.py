"""Configuration loader for Hallmark.

Loads from hallmark.toml with sensible defaults when file is absent.
Configuration is loaded once at startup and passed via dependency injection.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from hallmark.exceptions import HallmarkError


class ConfigError(HallmarkError):
    """Raised when configuration loading or validation fails."""


@dataclass(frozen=True)
class ProviderConfig:
    """Backend executables and their subprocess timeouts."""

    primary: str = "claude"  # "claude" | "codex"
    timeout_seconds: int = 300
    claude_command: str = "claude"
    codex_command: str = "codex"
    claude_timeout_env: str = "HALLMARK_CLAUDE_TIMEOUT"
    codex_timeout_env: str = "HALLMARK_CODEX_TIMEOUT"


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 2
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    jitter_seconds: float = 0.0


@dataclass(frozen=True)
class PenaltyConfig:
    """Confidence deductions, one per occurrence of each penalty source."""

    failed_search: int = 10
    zero_result_search: int = 0
    stub_finding: int = 15
    count_mismatch: int = 20
    unknown_count: int = 5
    # Large enough that an entry with no evidence lands below discard_below.
    unsupported_claim: int = 70


@dataclass(frozen=True)
class VerificationConfig:
    enabled: bool = True
    max_workers: int = 0  # 0 = one per CPU
    search_timeout_seconds: int = 30
    max_files_per_keyword: int = 10
    stub_files_per_keyword: int = 5
    stub_context_lines: int = 3
    excerpt_max_bytes: int = 5000
    discard_below: int = 40
    penalties: PenaltyConfig = field(default_factory=PenaltyConfig)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    """Top-level Hallmark configuration."""

    providers: ProviderConfig = field(default_factory=ProviderConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _int_setting(data: dict, key: str, default: int, *, minimum: int = 0) -> int:
    raw = data.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= minimum else default


def _float_setting(data: dict, key: str, default: float) -> float:
    raw = data.get(key, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 0 else default


def _parse_penalties(data: dict) -> PenaltyConfig:
    defaults = PenaltyConfig()
    return PenaltyConfig(
        failed_search=_int_setting(data, "failed_search", defaults.failed_search),
        zero_result_search=_int_setting(
            data, "zero_result_search", defaults.zero_result_search,
        ),
        stub_finding=_int_setting(data, "stub_finding", defaults.stub_finding),
        count_mismatch=_int_setting(data, "count_mismatch", defaults.count_mismatch),
        unknown_count=_int_setting(data, "unknown_count", defaults.unknown_count),
        unsupported_claim=_int_setting(
            data, "unsupported_claim", defaults.unsupported_claim,
        ),
    )


def load_config(path: Path | None = None) -> Config:
    """Load configuration from a TOML file.

    If path is None, searches for hallmark.toml in current directory then
    ~/.hallmark/. Returns default config if no file is found.
    """
    if path is None:
        candidates = [
            Path.cwd() / "hallmark.toml",
            Path.home() / ".hallmark" / "hallmark.toml",
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path is None or not path.exists():
        return Config()

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e

    prov_data = raw.get("providers", {})
    primary = str(prov_data.get("primary", "claude")).strip().lower()
    if primary not in ("claude", "codex"):
        raise ConfigError(
            f"Unknown primary provider {primary!r} in {path}; "
            "expected 'claude' or 'codex'"
        )
    providers = ProviderConfig(
        primary=primary,
        timeout_seconds=_int_setting(prov_data, "timeout_seconds", 300, minimum=1),
        claude_command=str(prov_data.get("claude_command", "claude")),
        codex_command=str(prov_data.get("codex_command", "codex")),
        claude_timeout_env=str(
            prov_data.get("claude_timeout_env", "HALLMARK_CLAUDE_TIMEOUT")
        ),
        codex_timeout_env=str(
            prov_data.get("codex_timeout_env", "HALLMARK_CODEX_TIMEOUT")
        ),
    )

    retry_data = raw.get("retry", {})
    retry = RetryConfig(
        max_retries=_int_setting(retry_data, "max_retries", 2),
        base_delay_seconds=_float_setting(retry_data, "base_delay_seconds", 1.0),
        max_delay_seconds=_float_setting(retry_data, "max_delay_seconds", 30.0),
        jitter_seconds=_float_setting(retry_data, "jitter_seconds", 0.0),
    )

    verif_data = raw.get("verification", {})
    penalties_data = verif_data.get("penalties", {})
    if not isinstance(penalties_data, dict):
        penalties_data = {}
    verification = VerificationConfig(
        enabled=bool(verif_data.get("enabled", True)),
        max_workers=_int_setting(verif_data, "max_workers", 0),
        search_timeout_seconds=_int_setting(
            verif_data, "search_timeout_seconds", 30, minimum=1,
        ),
        max_files_per_keyword=_int_setting(
            verif_data, "max_files_per_keyword", 10, minimum=1,
        ),
        stub_files_per_keyword=_int_setting(
            verif_data, "stub_files_per_keyword", 5, minimum=1,
        ),
        stub_context_lines=_int_setting(verif_data, "stub_context_lines", 3),
        excerpt_max_bytes=_int_setting(verif_data, "excerpt_max_bytes", 5000, minimum=1),
        discard_below=min(100, _int_setting(verif_data, "discard_below", 40)),
        penalties=_parse_penalties(penalties_data),
    )

    log_data = raw.get("logging", {})
    logging_cfg = LoggingConfig(
        level=str(log_data.get("level", "INFO")).upper(),
    )

    return Config(
        providers=providers,
        retry=retry,
        verification=verification,
        logging=logging_cfg,
    )
