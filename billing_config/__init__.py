"""
billing_config -- single public entrypoint for billing configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  This package sits above ``billing_kernel``; the kernel
    MUST NEVER import from ``billing_config``.  ``bridges`` translates the
    config into kernel inputs.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Same file always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- configured path does not exist.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BILLING_CONFIG_TRACE`` log entry with the config id, version, source
    path and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from billing_config.loader import load_config
from billing_config.schema import BillingConfig

_logger = logging.getLogger("billing_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "BILLING_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> BillingConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: explicit ``path``, then the ``BILLING_CONFIG_PATH``
    environment variable, then the bundled ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If configuration validation fails.
    """
    source = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    config, checksum = load_config(source)

    _logger.info(
        "BILLING_CONFIG_TRACE",
        extra={
            "trace_type": "BILLING_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "source": str(source),
            "checksum": checksum,
            "currency": config.currency,
            "timezone": config.timezone,
        },
    )
    return config


__all__ = [
    "BillingConfig",
    "CONFIG_PATH_ENV",
    "DEFAULT_CONFIG_PATH",
    "get_active_config",
]
