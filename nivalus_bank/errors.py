"""
Error Taxonomy

Every failure the banking core reports to a caller is a BankingError. Each
carries the HTTP status the API surfaces it with and a stable error code.
All of them are raised before any state change, except where noted.
"""

from typing import Any, Dict, Optional


class BankingError(ValueError):
    """Base class for errors surfaced synchronously to the caller"""

    status_code = 400
    code = "BANKING_ERROR"
    default_message = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)


# Validation errors

class InvalidRequest(BankingError):
    code = "INVALID_REQUEST"
    default_message = "Invalid request"


class InvalidStatus(BankingError):
    code = "INVALID_STATUS"
    default_message = "Invalid status"


# Authorization errors

class Unauthenticated(BankingError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Not authenticated"


class AccountInactive(BankingError):
    status_code = 403
    code = "ACCOUNT_INACTIVE"
    default_message = "Account is not active"


class Forbidden(BankingError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Unauthorized"


class InvalidPin(BankingError):
    code = "INVALID_PIN"
    default_message = "Invalid PIN"


class PinAttemptsExceeded(BankingError):
    status_code = 429
    code = "PIN_LOCKED"
    default_message = "Too many invalid PIN attempts, try again later"


# Business-rule errors

class InsufficientFunds(BankingError):
    code = "INSUFFICIENT_FUNDS"
    default_message = "Insufficient funds"


class DuplicateUsername(BankingError):
    code = "DUPLICATE_USERNAME"
    default_message = "Username already exists"


class DuplicateEmail(BankingError):
    code = "DUPLICATE_EMAIL"
    default_message = "Email already exists"


# Lookup errors

class AccountNotFound(BankingError):
    status_code = 404
    code = "ACCOUNT_NOT_FOUND"
    default_message = "User not found"


class TransactionNotFound(BankingError):
    status_code = 404
    code = "TRANSACTION_NOT_FOUND"
    default_message = "Transaction not found"
