"""
Module: cashflow_kernel.crypto.local
Responsibility: Reader (and, when explicitly allowed, writer) of the legacy
    local-fallback ciphertext format.
Architecture position: Kernel > Crypto.

Format::

    <marker>:<iv hex>:<key hex>:<ciphertext hex>

AES-256-CBC with PKCS7 padding.  The key travels inside the value, so this
is obfuscation, not encryption at rest.  Legacy rows in both the
``fallback:`` and ``fb:`` spellings exist and must stay readable.  Writing
new values in this format is gated by configuration in AmountCodec.
"""

import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

LOCAL_MARKERS = ("fallback", "fb")
WRITE_MARKER = "fallback"

_KEY_BYTES = 32
_IV_BYTES = 16
_BLOCK_BITS = 128


class LocalFormatError(ValueError):
    """Value is not a well-formed local-fallback ciphertext."""


def local_marker(stored: str) -> str | None:
    """Return the marker prefix of ``stored``, or None if it has none."""
    for marker in LOCAL_MARKERS:
        if stored.startswith(marker + ":"):
            return marker
    return None


class InsecureLocalCipher:
    """Key-embedding AES-256-CBC codec for the local-fallback format."""

    def encrypt(self, text: str, marker: str = WRITE_MARKER) -> str:
        key = os.urandom(_KEY_BYTES)
        iv = os.urandom(_IV_BYTES)
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(text.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{marker}:{iv.hex()}:{key.hex()}:{ciphertext.hex()}"

    def decrypt(self, stored: str) -> str:
        parts = stored.split(":")
        if len(parts) != 4 or parts[0] not in LOCAL_MARKERS:
            raise LocalFormatError("expected marker:iv:key:ciphertext")
        _, iv_hex, key_hex, cipher_hex = parts
        try:
            iv = bytes.fromhex(iv_hex)
            key = bytes.fromhex(key_hex)
            ciphertext = bytes.fromhex(cipher_hex)
        except ValueError as exc:
            raise LocalFormatError("non-hex component") from exc
        if len(iv) != _IV_BYTES or len(key) != _KEY_BYTES:
            raise LocalFormatError("wrong iv or key length")

        decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        plain = unpadder.update(padded) + unpadder.finalize()
        return plain.decode("utf-8")
