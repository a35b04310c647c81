"""
Module: cashflow_kernel.crypto.codec
Responsibility: Encode and decode every monetary and points value at rest.
Architecture position: Kernel > Crypto.  Shared decryption capability for
    every service; it has no knowledge of orders, wallets or the ledger.

Decode resolution order (first match wins):
    1. None / ""            -> 0, warning ``decrypt_empty_value``
    2. "0"                  -> 0, no cipher touched
    3. no envelope cipher   -> parse the stored text as plaintext
    4. local-fallback marker-> InsecureLocalCipher, logged as legacy read
    5. otherwise            -> base64-decode, envelope decrypt, UTF-8
    6. any failure in 4/5   -> log ``decrypt_failed`` and parse the original
                               text as a last resort

Invariants enforced:
    - decrypt() never raises.  Unparseable or non-finite text resolves to
      0 with a warning ``decrypt_unparseable``.
    - decrypt_many() isolates each element: one failure or timeout yields
      0 for that element only, results come back in input order.
    - encrypt() writes the key-embedding local format only when
      ``allow_insecure_local_fallback`` is set; otherwise an envelope
      failure raises AmountEncryptionError.
"""

import base64
import binascii
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Sequence

from cashflow_kernel.crypto.envelope import EnvelopeCipher
from cashflow_kernel.crypto.local import InsecureLocalCipher, local_marker
from cashflow_kernel.db.types import ZERO, format_money, money_from_any
from cashflow_kernel.exceptions import AmountEncryptionError, InvalidAmountError
from cashflow_kernel.logging_config import get_logger

DEFAULT_FANOUT_WORKERS = 8
DEFAULT_FANOUT_TIMEOUT_SECONDS = 10.0


class AmountCodec:
    """
    Envelope-encryption codec for EncryptedAmount strings.

    Args:
        envelope: Envelope cipher.  None puts the codec in plaintext mode
            (deployments without a configured key).
        allow_insecure_local_fallback: Permit writing the legacy
            key-embedding format when the envelope cipher fails.
        fanout_workers: Thread-pool size for decrypt_many().
        fanout_timeout_seconds: Bound on a whole decrypt_many() batch.
        logger: Injected logger; defaults to ``cashflow_kernel.crypto.codec``.
    """

    def __init__(
        self,
        envelope: EnvelopeCipher | None = None,
        *,
        allow_insecure_local_fallback: bool = False,
        fanout_workers: int = DEFAULT_FANOUT_WORKERS,
        fanout_timeout_seconds: float = DEFAULT_FANOUT_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ):
        self._envelope = envelope
        self._local = InsecureLocalCipher()
        self._allow_local_write = allow_insecure_local_fallback
        self._fanout_workers = max(1, fanout_workers)
        self._fanout_timeout = fanout_timeout_seconds
        self._logger = logger or get_logger("crypto.codec")

    @property
    def plaintext_mode(self) -> bool:
        return self._envelope is None

    # ------------------------------------------------------------------
    # Decode
    # ------------------------------------------------------------------

    def decrypt_text(self, stored: str | None) -> str:
        """Resolve ``stored`` to its plaintext string (steps 1-6)."""
        if stored is None or stored == "":
            self._logger.warning("decrypt_empty_value")
            return "0"
        if stored == "0":
            return stored
        if self._envelope is None:
            return stored

        marker = local_marker(stored)
        try:
            if marker is not None:
                text = self._local.decrypt(stored)
                self._logger.info("decrypt_legacy_local_value", extra={"marker": marker})
                return text
            return self._envelope_decrypt(stored)
        except Exception as exc:
            self._logger.error(
                "decrypt_failed",
                extra={
                    "path": "local" if marker else "envelope",
                    "error": str(exc) or type(exc).__name__,
                },
            )
            return stored

    def decrypt(self, stored: str | None) -> Decimal:
        """Decode an amount.  Never raises."""
        return self._parse(self.decrypt_text(stored))

    def decrypt_points(self, stored: str | None) -> int:
        """Decode an integer points value.  Never raises."""
        value = self.decrypt(stored)
        return int(value.to_integral_value(rounding=ROUND_HALF_UP))

    def decrypt_many(self, values: Sequence[str | None]) -> list[Decimal]:
        """
        Decode a batch with unordered concurrent fan-out.

        The batch shares one timeout window; any element not finished when
        it closes resolves to 0 and is logged as ``decrypt_timeout``.
        """
        if not values:
            return []
        if self._envelope is None or len(values) == 1:
            return [self._decrypt_isolated(v) for v in values]

        pool = ThreadPoolExecutor(
            max_workers=min(self._fanout_workers, len(values)),
            thread_name_prefix="amount-decrypt",
        )
        try:
            futures = [pool.submit(self.decrypt, v) for v in values]
            wait(futures, timeout=self._fanout_timeout)
            results: list[Decimal] = []
            for index, future in enumerate(futures):
                if not future.done():
                    future.cancel()
                    self._logger.error(
                        "decrypt_timeout",
                        extra={"index": index, "timeout_seconds": self._fanout_timeout},
                    )
                    results.append(ZERO)
                    continue
                exc = future.exception()
                if exc is not None:
                    self._logger.error(
                        "decrypt_failed",
                        extra={"index": index, "error": str(exc) or type(exc).__name__},
                    )
                    results.append(ZERO)
                else:
                    results.append(future.result())
            return results
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _decrypt_isolated(self, stored: str | None) -> Decimal:
        try:
            return self.decrypt(stored)
        except Exception as exc:
            self._logger.error("decrypt_failed", extra={"error": str(exc) or type(exc).__name__})
            return ZERO

    def _envelope_decrypt(self, stored: str) -> str:
        try:
            blob = base64.b64decode(stored, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("not base64 ciphertext") from exc
        return self._envelope.decrypt(blob).decode("utf-8")

    def _parse(self, text: str) -> Decimal:
        try:
            value = Decimal(text.strip())
        except (InvalidOperation, ValueError):
            self._logger.warning("decrypt_unparseable", extra={"length": len(text)})
            return ZERO
        if not value.is_finite():
            self._logger.warning("decrypt_unparseable", extra={"length": len(text)})
            return ZERO
        return value

    # ------------------------------------------------------------------
    # Encode
    # ------------------------------------------------------------------

    def encrypt(self, value: object) -> str:
        """
        Encode an amount for storage.

        Raises:
            InvalidAmountError: If ``value`` is not a finite number.
            AmountEncryptionError: If the envelope cipher fails and the
                insecure local fallback is not allowed.
        """
        try:
            amount = money_from_any(value)
        except ValueError as exc:
            raise InvalidAmountError("amount", value, str(exc)) from exc
        return self._encrypt_text(format_money(amount))

    def encrypt_points(self, points: int) -> str:
        if isinstance(points, bool) or not isinstance(points, int):
            raise InvalidAmountError("loyalty_points", points, "points must be an integer")
        return self._encrypt_text(str(points))

    def _encrypt_text(self, text: str) -> str:
        if self._envelope is None:
            return text
        try:
            blob = self._envelope.encrypt(text.encode("utf-8"))
            return base64.b64encode(blob).decode("ascii")
        except Exception as exc:
            reason = str(exc) or type(exc).__name__
            if not self._allow_local_write:
                self._logger.error("encrypt_failed", extra={"error": reason})
                raise AmountEncryptionError(reason) from exc
            self._logger.error("encrypt_failed_using_insecure_local_fallback", extra={"error": reason})
            return self._local.encrypt(text)
