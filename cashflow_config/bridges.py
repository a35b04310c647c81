"""
Config → Kernel Bridges.

Functions that turn a LedgerConfig into kernel objects.  They live here
(the producer) because the kernel must never import cashflow_config.

Usage:
    from cashflow_config import get_active_config
    from cashflow_config.bridges import build_amount_codec

    config = get_active_config()
    codec = build_amount_codec(config)
"""

from __future__ import annotations

import logging

from cashflow_config.schema import LedgerConfig
from cashflow_kernel.crypto import AmountCodec, EnvelopeCipher, FernetEnvelopeCipher


def build_envelope_cipher(config: LedgerConfig) -> EnvelopeCipher | None:
    """Fernet envelope cipher for the configured key, or None for plaintext mode."""
    if not config.codec.envelope_key:
        return None
    return FernetEnvelopeCipher(config.codec.envelope_key)


def build_amount_codec(
    config: LedgerConfig,
    envelope: EnvelopeCipher | None = None,
    logger: logging.Logger | None = None,
) -> AmountCodec:
    """
    Build the AmountCodec for ``config``.

    An explicit ``envelope`` (e.g. an adapter for a managed key service)
    takes precedence over the configured Fernet master key.
    """
    cipher = envelope if envelope is not None else build_envelope_cipher(config)
    return AmountCodec(
        cipher,
        allow_insecure_local_fallback=config.codec.allow_insecure_local_fallback,
        fanout_workers=config.codec.fanout_workers,
        fanout_timeout_seconds=config.codec.fanout_timeout_seconds,
        logger=logger,
    )
