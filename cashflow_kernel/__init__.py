"""
Cash-flow Kernel

The persistence and encryption core of the retail cash-flow ledger:
- Every monetary value stored as an EncryptedAmount
- Append-only wallet and shop transaction history
- Typed errors, structured logging, injectable clock
- Atomic, time-bounded units of work
"""

__version__ = "0.1.0"
