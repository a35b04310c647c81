"""
Typed exception hierarchy for the cash-flow ledger.

Every error carries a class-level ``code`` (machine-readable, API-safe) and
its context as attributes, so callers catch by type and read structured
data instead of parsing messages.

    CashflowKernelError (base)
    |
    +-- NotFoundError
    |   +-- ShopNotFoundError
    |   +-- UserNotFoundError
    |   +-- ProductNotFoundError
    |   +-- OrderNotFoundError
    |   +-- WalletNotFoundError
    |   +-- TransactionNotFoundError
    |   +-- RecurringPaymentNotFoundError
    |   +-- UpcomingPaymentNotFoundError
    |
    +-- AccessDeniedError
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |   +-- InsufficientPaymentError
    |
    +-- CodecError
    |   +-- AmountEncryptionError
    |   +-- EnvelopeServiceError
    |
    +-- UnitOfWorkError
        +-- UnitOfWorkTimeoutError

Decryption failures are deliberately absent: the codec resolves them to a
best-effort value and logs, it never raises on the read path.

Category        | Code                        | When raised
----------------|-----------------------------|-----------------------------------------
Not found       | SHOP_NOT_FOUND              | Shop id doesn't exist
                | USER_NOT_FOUND              | User id doesn't exist
                | ORDER_NOT_FOUND             | Order id doesn't exist
                | PRODUCT_NOT_FOUND           | Product id doesn't exist
                | WALLET_NOT_FOUND            | No wallet for (customer, shop)
                | TRANSACTION_NOT_FOUND       | Ledger transaction id doesn't exist
                | RECURRING_PAYMENT_NOT_FOUND | Recurring template id doesn't exist
                | UPCOMING_PAYMENT_NOT_FOUND  | Upcoming payment id doesn't exist
Access          | ACCESS_DENIED               | Caller is not a member of the shop
Validation      | INVALID_AMOUNT              | Negative / non-numeric amount on write
                | INSUFFICIENT_PAYMENT        | Tendered total below order total
Codec           | AMOUNT_ENCRYPTION_FAILED    | Envelope encrypt failed, no fallback allowed
                | ENVELOPE_SERVICE_ERROR      | Envelope service rejected the request
Unit of work    | UNIT_OF_WORK_FAILED         | Multi-row write rolled back
                | UNIT_OF_WORK_TIMEOUT        | Multi-row write exceeded its window
"""


class CashflowKernelError(Exception):
    """Base exception for all cash-flow ledger errors."""

    code: str = "CASHFLOW_KERNEL_ERROR"


# Not found


class NotFoundError(CashflowKernelError):
    """Referenced entity does not exist. Client-visible."""

    code: str = "NOT_FOUND"
    entity: str = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = str(entity_id)
        super().__init__(f"{self.entity} with ID {self.entity_id} not found")


class ShopNotFoundError(NotFoundError):
    code: str = "SHOP_NOT_FOUND"
    entity: str = "Shop"


class UserNotFoundError(NotFoundError):
    code: str = "USER_NOT_FOUND"
    entity: str = "User"


class ProductNotFoundError(NotFoundError):
    code: str = "PRODUCT_NOT_FOUND"
    entity: str = "Product"


class OrderNotFoundError(NotFoundError):
    code: str = "ORDER_NOT_FOUND"
    entity: str = "Order"


class WalletNotFoundError(NotFoundError):
    """No wallet exists for the (customer, shop) pair."""

    code: str = "WALLET_NOT_FOUND"
    entity: str = "Wallet"

    def __init__(self, customer_id: str, shop_id: str):
        self.customer_id = str(customer_id)
        self.shop_id = str(shop_id)
        super().__init__(f"{self.customer_id}@{self.shop_id}")


class TransactionNotFoundError(NotFoundError):
    code: str = "TRANSACTION_NOT_FOUND"
    entity: str = "Transaction"


class RecurringPaymentNotFoundError(NotFoundError):
    code: str = "RECURRING_PAYMENT_NOT_FOUND"
    entity: str = "Recurring payment"


class UpcomingPaymentNotFoundError(NotFoundError):
    code: str = "UPCOMING_PAYMENT_NOT_FOUND"
    entity: str = "Upcoming payment"


# Access


class AccessDeniedError(CashflowKernelError):
    """Caller has no membership in the shop."""

    code: str = "ACCESS_DENIED"

    def __init__(self, user_id: str, shop_id: str):
        self.user_id = str(user_id)
        self.shop_id = str(shop_id)
        super().__init__(f"User {self.user_id} does not have access to shop {self.shop_id}")


# Validation


class ValidationError(CashflowKernelError):
    code: str = "VALIDATION_ERROR"


class InvalidAmountError(ValidationError):
    """Amount supplied on a write path is not a usable value."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid amount for {field}: {self.value} ({reason})")


class InsufficientPaymentError(ValidationError):
    code: str = "INSUFFICIENT_PAYMENT"

    def __init__(self, tendered: str, total: str):
        self.tendered = tendered
        self.total = total
        super().__init__(f"Total payment ({tendered}) is less than order total ({total})")


# Codec


class CodecError(CashflowKernelError):
    code: str = "CODEC_ERROR"


class AmountEncryptionError(CodecError):
    """Envelope encryption failed and the insecure fallback is disabled."""

    code: str = "AMOUNT_ENCRYPTION_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to encrypt amount: {reason}")


class EnvelopeServiceError(CodecError):
    """The envelope-encryption service failed or rejected its input."""

    code: str = "ENVELOPE_SERVICE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Envelope {operation} failed: {reason}")


# Unit of work


class UnitOfWorkError(CashflowKernelError):
    """A multi-row write could not complete and was rolled back."""

    code: str = "UNIT_OF_WORK_FAILED"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"{operation} failed and was rolled back: {reason}")


class UnitOfWorkTimeoutError(UnitOfWorkError):
    code: str = "UNIT_OF_WORK_TIMEOUT"

    def __init__(self, operation: str, elapsed_seconds: float, timeout_seconds: float):
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds
        super().__init__(
            operation,
            f"exceeded {timeout_seconds:.1f}s window ({elapsed_seconds:.2f}s elapsed)",
        )
