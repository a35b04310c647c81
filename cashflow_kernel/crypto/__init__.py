"""Amount encryption at rest: codec, envelope port, legacy local format."""

from cashflow_kernel.crypto.codec import AmountCodec
from cashflow_kernel.crypto.envelope import EnvelopeCipher, FernetEnvelopeCipher
from cashflow_kernel.crypto.local import LOCAL_MARKERS, InsecureLocalCipher, local_marker

__all__ = [
    "AmountCodec",
    "EnvelopeCipher",
    "FernetEnvelopeCipher",
    "InsecureLocalCipher",
    "LOCAL_MARKERS",
    "local_marker",
]
