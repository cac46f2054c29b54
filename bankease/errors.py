"""
Domain Errors

Every failure a caller can observe maps to exactly one error kind. The kind
is stable and machine readable; the message is meant for humans.
"""


class BankingError(Exception):
    """Base class for all BankEase domain errors"""

    kind = "internal"
    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class InvalidInputError(BankingError):
    """Malformed or missing fields, correctable by the caller"""
    kind = "invalid_input"
    status_code = 400
    default_message = "Invalid input"


class InvalidAmountError(InvalidInputError):
    """Amount is not a positive number within the allowed range and precision"""
    kind = "invalid_amount"
    default_message = "Please provide a valid amount greater than 0"


class ConflictError(BankingError):
    """Duplicate unique key"""
    kind = "conflict"
    status_code = 409
    default_message = "Resource already exists"


class InvalidCredentialsError(BankingError):
    """Phone/PIN pair rejected; never says which one was wrong"""
    kind = "invalid_credentials"
    status_code = 401
    default_message = "Invalid phone number or PIN"


class InvalidOrExpiredCredentialError(BankingError):
    """Bearer credential failed signature or expiry check"""
    kind = "invalid_or_expired_credential"
    status_code = 401
    default_message = "Invalid or expired token"


class NotFoundError(BankingError):
    kind = "not_found"
    status_code = 404
    default_message = "Not found"


class RecipientNotFoundError(NotFoundError):
    kind = "recipient_not_found"
    default_message = "Recipient not found. Please check the phone number."


class InsufficientFundsError(BankingError):
    kind = "insufficient_funds"
    status_code = 400
    default_message = "Insufficient balance"


class SelfTransferNotAllowedError(BankingError):
    kind = "self_transfer_not_allowed"
    status_code = 400
    default_message = "Cannot send money to yourself"


class InternalError(BankingError):
    """Unexpected storage or infrastructure failure; the operation was rolled back"""
    kind = "internal"
    status_code = 500


class RateLimitedError(BankingError):
    """Too many requests from one client inside the limiter window"""
    kind = "rate_limited"
    status_code = 429
    default_message = "Too many requests from this IP, please try again later."
