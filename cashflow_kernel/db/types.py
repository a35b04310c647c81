"""
Module: cashflow_kernel.db.types
Responsibility: Annotated column aliases and the sanctioned money helpers.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Monetary values at rest are EncryptedAmount strings.  The column is
      wide enough for base64 envelope ciphertext and for the legacy local
      fallback format.
    - No floats: every in-memory amount is a Decimal rounded through
      round_money().
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Text
from sqlalchemy.orm import mapped_column

# Opaque at-rest representation of an amount or a points value.
EncryptedAmount = Annotated[str, mapped_column(Text)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value.  The only sanctioned rounding function."""
    quantize_str = "0." + "0" * decimal_places if decimal_places else "0"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def money_from_any(value: object) -> Decimal:
    """
    Coerce a caller-supplied amount to Decimal.

    Floats are routed through ``str`` so 0.1 becomes Decimal("0.1") rather
    than its binary expansion.

    Raises:
        ValueError: If the value is not numeric or not finite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not an amount: {value!r}")
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not an amount: {value!r}") from exc
    else:
        raise ValueError(f"Not an amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Amount is not finite: {value!r}")
    return result


def format_money(value: Decimal) -> str:
    """Canonical plaintext form of an amount (two decimal places)."""
    return str(round_money(value))
