"""
ledger_config -- single public entrypoint for ledger settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_settings()``. Engines take a ``LedgerSettings`` argument where
    they need one and never read files or the environment.

Resolution order:
    1. An explicit ``path`` argument.
    2. The ``LEDGER_CONFIG_PATH`` environment variable.
    3. The shipped ``defaults.yaml``.

Failure modes:
    - ``FileNotFoundError`` -- the resolved path does not exist.
    - ``ConfigurationError`` -- the file parses but holds invalid values.

Every successful call emits a ``LEDGER_CONFIG_TRACE`` log record with the
source path and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.loader import load_yaml_file, parse_settings
from ledger_config.schema import LedgerSettings, ReliabilityWeights

__all__ = ["LedgerSettings", "ReliabilityWeights", "get_settings", "DEFAULT_CONFIG_PATH"]

_logger = logging.getLogger("ledger_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"
ENV_VAR = "LEDGER_CONFIG_PATH"


def get_settings(path: Path | str | None = None) -> LedgerSettings:
    """The ONLY public settings entrypoint.

    Args:
        path: Override path to a settings YAML file.

    Returns:
        LedgerSettings parsed from the resolved file.
    """
    if path is None:
        path = os.environ.get(ENV_VAR) or DEFAULT_CONFIG_PATH
    source = Path(path)

    settings = parse_settings(load_yaml_file(source), source=str(source))

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "source": str(source),
            "checksum": settings.checksum,
            "currency": settings.currency,
            "timezone": settings.timezone,
        },
    )
    return settings
