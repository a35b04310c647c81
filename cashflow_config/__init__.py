"""
cashflow_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  No other component reads configuration files or
    environment variables directly.

Architecture position:
    Configuration.  Sits above ``cashflow_kernel`` and below
    ``cashflow_services``.  The kernel MUST NEVER import from
    ``cashflow_config``; ``bridges`` turns a LedgerConfig into kernel
    objects.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` / ``ValueError`` -- required keys missing or values
      out of range.

Audit relevance:
    Every successful call emits a ``CASHFLOW_CONFIG_TRACE`` log entry with
    the config id, version and checksum, tying each ledger write back to
    the configuration that governed it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from cashflow_config.loader import load_yaml_file, parse_ledger_config
from cashflow_config.schema import (
    CashFlowConfig,
    CodecConfig,
    LedgerConfig,
    ReconciliationConfig,
    SchedulerConfig,
    UnitOfWorkConfig,
)

_logger = logging.getLogger("cashflow_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to
            ``cashflow_config/sets/default.yaml``.
        environ: Environment used to resolve secrets such as the envelope
            key.  Defaults to ``os.environ``.

    Returns:
        A frozen, validated LedgerConfig.
    """
    path = config_path or _DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)
    config = parse_ledger_config(data, environ if environ is not None else os.environ)

    _logger.info(
        "CASHFLOW_CONFIG_TRACE",
        extra={
            "trace_type": "CASHFLOW_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "plaintext_mode": config.codec.envelope_key is None,
            "insecure_local_fallback": config.codec.allow_insecure_local_fallback,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "LedgerConfig",
    "CodecConfig",
    "ReconciliationConfig",
    "SchedulerConfig",
    "CashFlowConfig",
    "UnitOfWorkConfig",
]
