from __future__ import annotations


class ErrorMessage:
    MSG_INTERNAL_SERVER_ERROR = "An internal server error occurred."
    MSG_FORBIDDEN_ERROR = "You do not have permission to perform this action."
    MSG_UNAUTHORIZED = "Authentication required."
    MSG_INVALID_DATE_FORMAT = "Invalid date format."
    MSG_TOKEN_EXPIRED = "Token has expired."
    MSG_INVALID_TOKEN = "Invalid token."
    MSG_PASSWORD_RULES_VIOLATION = (
        "Password must be 8-30 characters and contain a letter, a number and a special character."
    )
    MSG_EMAIL_RULES_VIOLATION = "Email address is not valid."
    MSG_PARAMETER_REQUIRED = "A required parameter is missing."
    MSG_EMAIL_ALREADY_EXISTS = "Email already exists."
    MSG_NOT_FOUND_USER = "User not found."
    MSG_PASSWORD_NOT_MATCH = "Password does not match."
    MSG_NOT_IMPLEMENTED = "Not implemented."
    MSG_NOT_FOUND_ACCOUNT = "Account not found."
    MSG_AMOUNT_MUST_BE_GREATER_THAN_ZERO = "Amount must be greater than zero."
    MSG_NOT_FOUND_BANK_SUMMARY = "Bank summary not found."
    MSG_NOT_FOUND_BANK_TRANSACTION = "Bank transaction not found."
    MSG_NOT_FOUND_COIN_SUMMARY = "Coin summary not found."
    MSG_NOT_FOUND_COIN_TRANSACTION = "Coin transaction not found."
    MSG_NOT_FOUND_STOCK_SUMMARY = "Stock summary not found."
    MSG_NOT_FOUND_STOCK_TRANSACTION = "Stock transaction not found."
    MSG_NOT_FOUND_ETC_SUMMARY = "Etc summary not found."
    MSG_NOT_FOUND_ETC_TRANSACTION = "Etc transaction not found."
    MSG_NOT_FOUND_LIABILITIES_SUMMARY = "Liabilities summary not found."
    MSG_NOT_FOUND_LIABILITIES_TRANSACTION = "Liabilities transaction not found."
    MSG_NOT_BANK_ACCOUNT = "Account is not a bank account."
    MSG_NOT_STOCK_ACCOUNT = "Account is not a stock account."
    MSG_NOT_COIN_ACCOUNT = "Account is not a coin account."
    MSG_NOT_ETC_ACCOUNT = "Account is not an etc account."
    MSG_NOT_LIABILITIES_ACCOUNT = "Account is not a liabilities account."
    MSG_SAME_ACCOUNT_TRANSFER = "Cannot transfer to the same account."
    MSG_NOT_CASH_TYPE_SUMMARY = "Account has no cash balance to transfer."
    MSG_CURRENCY_MISMATCH = "Accounts must use the same currency."
    MSG_INSUFFICIENT_BALANCE = "Insufficient balance."
    MSG_TRANSFER_COMPLETED = "Transfer completed."
    MSG_DUPLICATE_ENTRY = "A record with the same key already exists."
    MSG_EXTERNAL_SERVICE_ERROR = "External service request failed."


class AppException(Exception):
    """Base for errors reported to API clients.

    ``extensions`` is picked up by graphql-core when the error is located,
    so clients see ``code`` and ``status`` next to the message.
    """

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        self.message = message or ErrorMessage.MSG_INTERNAL_SERVER_ERROR
        self.error = error or self.code
        super().__init__(self.message)

    @property
    def extensions(self) -> dict:
        return {"code": self.code, "status": self.status_code, "error": self.error}


class TokenExpiredException(AppException):
    code = "TOKEN_EXPIRED"
    status_code = 401

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        super().__init__(message or ErrorMessage.MSG_TOKEN_EXPIRED, error)


class InvalidTokenException(AppException):
    code = "INVALID_TOKEN"
    status_code = 401

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        super().__init__(message or ErrorMessage.MSG_INVALID_TOKEN, error)


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        super().__init__(message or ErrorMessage.MSG_UNAUTHORIZED, error)


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        super().__init__(message or ErrorMessage.MSG_FORBIDDEN_ERROR, error)


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 400


class BadRequestException(AppException):
    code = "BAD_REQUEST"
    status_code = 400


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        super().__init__(message or ErrorMessage.MSG_DUPLICATE_ENTRY, error)


class TooManyRequestsException(AppException):
    code = "TOO_MANY_REQUESTS"
    status_code = 429


class ExternalServiceException(AppException):
    code = "EXTERNAL_SERVICE_ERROR"
    status_code = 500

    def __init__(self, message: str | None = None, error: str | None = None) -> None:
        super().__init__(message or ErrorMessage.MSG_EXTERNAL_SERVICE_ERROR, error)


class InternalServerException(AppException):
    code = "INTERNAL_SERVER_ERROR"
    status_code = 500


class DatabaseException(AppException):
    code = "DATABASE_ERROR"
    status_code = 500


class ServiceUnavailableException(AppException):
    code = "SERVICE_UNAVAILABLE"
    status_code = 503
