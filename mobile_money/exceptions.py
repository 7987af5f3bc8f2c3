"""
Typed Exception Hierarchy

Every failure of the ledger core is a MobileMoneyError subclass carrying a
machine-readable ``code`` and the HTTP status the API boundary reports.

    MobileMoneyError
    +-- BelowMinimum          400
    +-- InsufficientFunds     400
    +-- RecipientNotFound     400
    +-- AgentNotFound         400
    +-- UserNotFound          400
    +-- NotFound              400  (transaction)
    +-- AlreadyProcessed      400
    +-- AccountBlocked        400
    +-- InvalidRequest        400
    +-- NotAuthorized         403
    +-- InternalFailure       500  (atomic unit could not complete; safe to retry)
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class MobileMoneyError(Exception):
    """Base class for all ledger core errors"""

    code: str = "MOBILE_MONEY_ERROR"
    http_status: int = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"error": self.code, "message": self.message}
        for key, value in self.details.items():
            result[key] = str(value) if isinstance(value, Decimal) else value
        return result


class BelowMinimum(MobileMoneyError):
    code = "BelowMinimum"

    def __init__(self, amount: Decimal, minimum: Decimal):
        super().__init__(
            f"Amount {amount} is below the minimum of {minimum}",
            amount=amount, minimum=minimum
        )


class InsufficientFunds(MobileMoneyError):
    code = "InsufficientFunds"

    def __init__(self, account_id: str, available: Decimal, required: Decimal):
        super().__init__(
            f"Insufficient balance: available {available}, required {required}",
            account_id=account_id, available=available, required=required
        )


class RecipientNotFound(MobileMoneyError):
    code = "RecipientNotFound"


class AgentNotFound(MobileMoneyError):
    code = "AgentNotFound"


class UserNotFound(MobileMoneyError):
    code = "UserNotFound"


class NotFound(MobileMoneyError):
    code = "NotFound"


class AlreadyProcessed(MobileMoneyError):
    code = "AlreadyProcessed"


class AccountBlocked(MobileMoneyError):
    code = "AccountBlocked"


class InvalidRequest(MobileMoneyError):
    code = "InvalidRequest"


class NotAuthorized(MobileMoneyError):
    code = "NotAuthorized"
    http_status = 403


class InternalFailure(MobileMoneyError):
    code = "InternalFailure"
    http_status = 500

    def __init__(self, message: str, operation: Optional[str] = None):
        if operation:
            super().__init__(message, operation=operation)
        else:
            super().__init__(message)
