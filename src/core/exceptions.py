"""
Domain exceptions of the coin ledger.

Every exception carries the HTTP status it maps to, the API layer turns
them into JSON responses in one place (see api_server.py).
"""

from typing import Any, Dict, Optional


class MonetizationError(Exception):
    """Base class for expected, user-facing domain errors."""

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message}


class InsufficientFundsError(MonetizationError):
    """Balance is lower than the amount being debited.

    Attributes:
        required: Amount the operation needed
        available: Balance at the moment of the failed debit
    """

    status_code = 400

    def __init__(self, required: int, available: int):
        super().__init__("Insufficient coins")
        self.required = required
        self.available = available

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "required": self.required,
            "available": self.available,
        }


class NotFoundError(MonetizationError):
    status_code = 404

    def __init__(self, entity: str, entity_id: Optional[Any] = None):
        message = f"{entity} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class AuthorizationError(MonetizationError):
    """Role or ownership mismatch."""

    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class InvalidRequestError(MonetizationError):
    status_code = 400


class NotEligibleError(InvalidRequestError):
    """Action is valid in general but not for this user right now."""


class BalanceOverflowError(InvalidRequestError):
    def __init__(self, user_id: int, amount: int):
        super().__init__("Balance limit exceeded")
        self.user_id = user_id
        self.amount = amount


class DuplicateOperationError(MonetizationError):
    """An operation with the same idempotency key was already recorded."""

    status_code = 409

    def __init__(self, idempotency_key: str):
        super().__init__("Operation already processed")
        self.idempotency_key = idempotency_key
