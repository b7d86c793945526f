"""Opt-in latency logging for backend invocations and scans."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

LATENCY_ENV_VAR = "HALLMARK_LATENCY_DIAGNOSTICS"
_TRUTHY = {"1", "true", "yes", "on"}


def diagnostics_enabled() -> bool:
    """Return whether latency diagnostics are enabled for this process."""
    return os.environ.get(LATENCY_ENV_VAR, "").strip().lower() in _TRUTHY


@contextmanager
def timed_block(
    logger: logging.Logger,
    *,
    event: str,
    fields: dict[str, Any] | None = None,
    sink: Callable[[float], None] | None = None,
) -> Iterator[None]:
    """Measure the enclosed block; log it when diagnostics are enabled.

    ``sink`` always receives the elapsed seconds, even when the block raises.
    """
    started = time.monotonic()
    try:
        yield
    finally:
        elapsed = max(0.0, time.monotonic() - started)
        if sink is not None:
            sink(elapsed)
        if diagnostics_enabled():
            extra = "".join(f" {key}={value}" for key, value in (fields or {}).items())
            logger.info(
                "latency event=%s duration_ms=%.2f%s", event, elapsed * 1000.0, extra,
            )
