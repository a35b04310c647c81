"""
Configuration Loader (``cashflow_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``cashflow_config.schema`` dataclasses.  Runtime callers go through
``cashflow_config.get_active_config()``; this module is its internals.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError`` from the schema's ``__post_init__``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from cashflow_config.schema import (
    CashFlowConfig,
    CodecConfig,
    LedgerConfig,
    ReconciliationConfig,
    SchedulerConfig,
    UnitOfWorkConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file.  An empty file yields ``{}``."""
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_codec(data: dict[str, Any], environ: Mapping[str, str]) -> CodecConfig:
    key_env = data.get("envelope_key_env", "CASHFLOW_ENVELOPE_KEY")
    key = environ.get(key_env) if key_env else None
    return CodecConfig(
        envelope_key_env=key_env,
        envelope_key=key or None,
        allow_insecure_local_fallback=bool(data.get("allow_insecure_local_fallback", False)),
        fanout_workers=int(data.get("fanout_workers", 8)),
        fanout_timeout_seconds=float(data.get("fanout_timeout_seconds", 10.0)),
    )


def parse_reconciliation(data: dict[str, Any]) -> ReconciliationConfig:
    return ReconciliationConfig(tolerance=Decimal(str(data.get("tolerance", "1.00"))))


def parse_scheduler(data: dict[str, Any]) -> SchedulerConfig:
    kwargs: dict[str, Any] = {}
    if "default_frequency" in data:
        kwargs["default_frequency"] = str(data["default_frequency"])
    if "category_by_payment_type" in data:
        mapping = data["category_by_payment_type"] or {}
        kwargs["category_by_payment_type"] = tuple(
            (str(k), str(v)) for k, v in sorted(mapping.items())
        )
    return SchedulerConfig(**kwargs)


def parse_cash_flow(data: dict[str, Any]) -> CashFlowConfig:
    kwargs: dict[str, Any] = {}
    if "income_types" in data:
        kwargs["income_types"] = tuple(data["income_types"])
    if "expense_types" in data:
        kwargs["expense_types"] = tuple(data["expense_types"])
    if "recent_transactions_limit" in data:
        kwargs["recent_transactions_limit"] = int(data["recent_transactions_limit"])
    if "default_days_until_next_payment" in data:
        kwargs["default_days_until_next_payment"] = int(data["default_days_until_next_payment"])
    return CashFlowConfig(**kwargs)


def parse_unit_of_work(data: dict[str, Any]) -> UnitOfWorkConfig:
    return UnitOfWorkConfig(timeout_seconds=float(data.get("timeout_seconds", 10.0)))


def parse_ledger_config(
    data: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """
    Parse a full configuration document.

    ``config_id`` and ``version`` are required; every section is optional
    and falls back to schema defaults.  The checksum covers the document as
    written, not the resolved environment.
    """
    env = environ if environ is not None else {}
    return LedgerConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        codec=parse_codec(data.get("codec") or {}, env),
        reconciliation=parse_reconciliation(data.get("reconciliation") or {}),
        scheduler=parse_scheduler(data.get("scheduler") or {}),
        cash_flow=parse_cash_flow(data.get("cash_flow") or {}),
        unit_of_work=parse_unit_of_work(data.get("unit_of_work") or {}),
        checksum=compute_checksum(data),
    )
