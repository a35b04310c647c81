"""
Tests for AmountCodec.

Covers:
- Round trip in plaintext and envelope mode
- Empty / zero / unparseable stored values
- Legacy local-fallback values (both markers)
- Degradation to the stored text when the envelope cannot decrypt
- Encrypt failure policy (raise vs. insecure local fallback)
- decrypt_many ordering, per-element isolation and timeout
"""

import base64
import threading
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from cashflow_kernel.crypto import (
    AmountCodec,
    EnvelopeCipher,
    FernetEnvelopeCipher,
    InsecureLocalCipher,
)
from cashflow_kernel.exceptions import (
    AmountEncryptionError,
    EnvelopeServiceError,
    InvalidAmountError,
)

_KEY = FernetEnvelopeCipher.generate_master_key()
_PLAIN = AmountCodec(None)
_ENVELOPE = AmountCodec(FernetEnvelopeCipher(_KEY))

amounts = st.decimals(
    min_value=Decimal("-1000000"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class _BrokenEnvelope(EnvelopeCipher):
    def encrypt(self, plaintext: bytes) -> bytes:
        raise EnvelopeServiceError("encrypt", "key service unavailable")

    def decrypt(self, ciphertext: bytes) -> bytes:
        raise EnvelopeServiceError("decrypt", "key service unavailable")


class _SlowEnvelope(EnvelopeCipher):
    """Fernet envelope that stalls on one plaintext until released."""

    def __init__(self, stall_on: bytes):
        self._inner = FernetEnvelopeCipher(_KEY)
        self._stall_on = stall_on
        self.release = threading.Event()

    def encrypt(self, plaintext: bytes) -> bytes:
        return self._inner.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        plain = self._inner.decrypt(ciphertext)
        if plain == self._stall_on:
            self.release.wait(5)
        return plain


class TestRoundTrip:
    """decrypt(encrypt(x)) == x in both modes."""

    @given(amount=amounts)
    def test_plaintext_round_trip(self, amount):
        assert _PLAIN.decrypt(_PLAIN.encrypt(amount)) == amount

    @settings(max_examples=40)
    @given(amount=amounts)
    def test_envelope_round_trip(self, amount):
        assert _ENVELOPE.decrypt(_ENVELOPE.encrypt(amount)) == amount

    @given(points=st.integers(min_value=0, max_value=10**9))
    def test_points_round_trip(self, points):
        assert _PLAIN.decrypt_points(_PLAIN.encrypt_points(points)) == points

    def test_plaintext_mode_stores_canonical_text(self):
        assert _PLAIN.encrypt(Decimal("12.5")) == "12.50"
        assert _PLAIN.plaintext_mode is True

    def test_envelope_mode_stores_base64_ciphertext(self):
        stored = _ENVELOPE.encrypt(Decimal("12.50"))

        assert "12.50" not in stored
        base64.b64decode(stored, validate=True)
        assert _ENVELOPE.plaintext_mode is False

    def test_same_amount_encrypts_differently(self):
        """A fresh data key per value."""
        assert _ENVELOPE.encrypt("5") != _ENVELOPE.encrypt("5")


class TestDecodeEdgeCases:
    @pytest.mark.parametrize("stored", [None, ""])
    def test_empty_value_is_zero_with_warning(self, stored, captured_logs):
        assert _ENVELOPE.decrypt(stored) == Decimal("0")

        logs = captured_logs()
        assert any(
            r["message"] == "decrypt_empty_value" and r["level"] == "WARNING" for r in logs
        )

    def test_literal_zero_short_circuits(self):
        codec = AmountCodec(_BrokenEnvelope())
        assert codec.decrypt("0") == Decimal("0")

    def test_plaintext_mode_returns_stored_text(self):
        assert _PLAIN.decrypt("42.10") == Decimal("42.10")

    def test_unparseable_plaintext_is_zero(self, captured_logs):
        assert _PLAIN.decrypt("not-a-number") == Decimal("0")
        assert any(r["message"] == "decrypt_unparseable" for r in captured_logs())

    def test_non_finite_text_is_zero(self):
        assert _PLAIN.decrypt("NaN") == Decimal("0")
        assert _PLAIN.decrypt("Infinity") == Decimal("0")

    def test_points_round_half_up(self):
        assert _PLAIN.decrypt_points("7.5") == 8
        assert _PLAIN.decrypt_points("7.49") == 7


class TestLegacyLocalFormat:
    @pytest.mark.parametrize("marker", ["fallback", "fb"])
    def test_both_markers_are_readable(self, marker, captured_logs):
        stored = InsecureLocalCipher().encrypt("42.00", marker=marker)

        assert stored.startswith(marker + ":")
        assert _ENVELOPE.decrypt(stored) == Decimal("42.00")
        assert any(r["message"] == "decrypt_legacy_local_value" for r in captured_logs())

    def test_malformed_local_value_degrades(self, captured_logs):
        assert _ENVELOPE.decrypt("fallback:zz:yy") == Decimal("0")

        failed = [r for r in captured_logs() if r["message"] == "decrypt_failed"]
        assert failed and failed[0]["path"] == "local"


class TestEnvelopeDegradation:
    def test_legacy_plaintext_row_under_envelope_mode(self, captured_logs):
        """A value written before encryption was enabled still decodes."""
        assert _ENVELOPE.decrypt("15.75") == Decimal("15.75")
        assert any(r["message"] == "decrypt_failed" for r in captured_logs())

    def test_value_from_another_master_key(self):
        other = AmountCodec(FernetEnvelopeCipher(FernetEnvelopeCipher.generate_master_key()))
        stored = other.encrypt("99.99")

        assert _ENVELOPE.decrypt(stored) == Decimal("0")

    def test_envelope_outage_never_raises_on_read(self):
        stored = _ENVELOPE.encrypt("10")
        codec = AmountCodec(_BrokenEnvelope())

        assert codec.decrypt(stored) == Decimal("0")


class TestEncryptPolicy:
    def test_envelope_failure_raises_without_fallback(self, captured_logs):
        codec = AmountCodec(_BrokenEnvelope())

        with pytest.raises(AmountEncryptionError) as exc_info:
            codec.encrypt("10")

        assert exc_info.value.code == "AMOUNT_ENCRYPTION_FAILED"
        assert any(r["message"] == "encrypt_failed" for r in captured_logs())

    def test_envelope_failure_uses_local_format_when_allowed(self, captured_logs):
        codec = AmountCodec(_BrokenEnvelope(), allow_insecure_local_fallback=True)

        stored = codec.encrypt("10")

        assert stored.startswith("fallback:")
        assert codec.decrypt(stored) == Decimal("10")
        assert any(
            r["message"] == "encrypt_failed_using_insecure_local_fallback"
            for r in captured_logs()
        )

    @pytest.mark.parametrize("bad", ["abc", float("nan"), None, True, object()])
    def test_invalid_amount_rejected(self, bad):
        with pytest.raises(InvalidAmountError):
            _PLAIN.encrypt(bad)

    def test_points_must_be_int(self):
        with pytest.raises(InvalidAmountError):
            _PLAIN.encrypt_points(True)
        with pytest.raises(InvalidAmountError):
            _PLAIN.encrypt_points(1.5)


class TestDecryptMany:
    def test_empty_batch(self):
        assert _ENVELOPE.decrypt_many([]) == []

    def test_order_is_preserved(self):
        values = [Decimal(i) for i in range(20)]
        stored = [_ENVELOPE.encrypt(v) for v in values]

        assert _ENVELOPE.decrypt_many(stored) == values

    def test_one_bad_element_does_not_abort_batch(self):
        stored = [_ENVELOPE.encrypt("1"), "garbage!", None, _ENVELOPE.encrypt("3")]

        assert _ENVELOPE.decrypt_many(stored) == [
            Decimal("1"), Decimal("0"), Decimal("0"), Decimal("3"),
        ]

    def test_plaintext_mode_batch(self):
        assert _PLAIN.decrypt_many(["1.50", "x", "2"]) == [
            Decimal("1.50"), Decimal("0"), Decimal("2"),
        ]

    def test_stalled_element_times_out_to_zero(self, captured_logs):
        envelope = _SlowEnvelope(stall_on=b"99.00")
        codec = AmountCodec(envelope, fanout_timeout_seconds=0.2)
        stored = [codec.encrypt("1"), codec.encrypt("99"), codec.encrypt("2")]
        try:
            result = codec.decrypt_many(stored)
        finally:
            envelope.release.set()

        assert result == [Decimal("1"), Decimal("0"), Decimal("2")]
        timeouts = [r for r in captured_logs() if r["message"] == "decrypt_timeout"]
        assert [r["index"] for r in timeouts] == [1]
