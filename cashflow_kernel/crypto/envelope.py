"""
Module: cashflow_kernel.crypto.envelope
Responsibility: The envelope-encryption port and its Fernet implementation.
Architecture position: Kernel > Crypto.  Consumed only by AmountCodec.

The managed key service is an external collaborator.  ``EnvelopeCipher`` is
the seam: production wires an adapter for the deployment's key service,
tests and single-node deployments use ``FernetEnvelopeCipher``, which does
envelope encryption locally with a master key held by configuration.

Invariants enforced:
    - ``decrypt(encrypt(b)) == b`` for any bytes ``b``.
    - Every failure surfaces as EnvelopeServiceError; the raw library
      exception is chained, never leaked as the public type.
"""

from abc import ABC, abstractmethod

from cryptography.fernet import Fernet, InvalidToken

from cashflow_kernel.exceptions import EnvelopeServiceError

_SEPARATOR = b"."


class EnvelopeCipher(ABC):
    """Opaque encrypt/decrypt of small byte payloads."""

    @abstractmethod
    def encrypt(self, plaintext: bytes) -> bytes:
        """Encrypt ``plaintext``.  Raises EnvelopeServiceError on failure."""
        ...

    @abstractmethod
    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt ``ciphertext``.  Raises EnvelopeServiceError on failure."""
        ...


class FernetEnvelopeCipher(EnvelopeCipher):
    """
    Envelope encryption with a fresh Fernet data key per value.

    The data key encrypts the payload; the master key wraps the data key.
    Blob layout: ``wrapped_data_key . payload_token`` (both Fernet tokens
    are urlsafe base64, so ``.`` never occurs inside either).
    """

    def __init__(self, master_key: str | bytes):
        if isinstance(master_key, str):
            master_key = master_key.encode("ascii")
        try:
            self._master = Fernet(master_key)
        except (ValueError, TypeError) as exc:
            raise EnvelopeServiceError("configure", "master key is not a valid Fernet key") from exc

    @staticmethod
    def generate_master_key() -> str:
        return Fernet.generate_key().decode("ascii")

    def encrypt(self, plaintext: bytes) -> bytes:
        data_key = Fernet.generate_key()
        payload = Fernet(data_key).encrypt(plaintext)
        wrapped = self._master.encrypt(data_key)
        return wrapped + _SEPARATOR + payload

    def decrypt(self, ciphertext: bytes) -> bytes:
        wrapped, sep, payload = ciphertext.partition(_SEPARATOR)
        if not sep or not wrapped or not payload:
            raise EnvelopeServiceError("decrypt", "malformed envelope")
        try:
            data_key = self._master.decrypt(wrapped)
            return Fernet(data_key).decrypt(payload)
        except InvalidToken as exc:
            raise EnvelopeServiceError("decrypt", "invalid token") from exc
        except ValueError as exc:
            raise EnvelopeServiceError("decrypt", str(exc)) from exc
