from __future__ import annotations


class LoanServiceError(Exception):
    """Base for errors raised by the loan payment services.

    Every error carries a stable ``code`` for clients, a human readable
    ``message`` and an optional ``details`` mapping.
    """

    code = "server_error"
    default_message = "An unexpected error occurred. Please try again later."

    def __init__(self, message: str | None = None, details: dict | None = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class ValidationError(LoanServiceError):
    code = "validation_error"
    default_message = "Validation failed"


class NotFound(LoanServiceError):
    code = "not_found"
    default_message = "Loan application not found."


class AlreadyPaid(LoanServiceError):
    code = "already_paid"
    default_message = "This loan application has already been paid for."


class InvalidPhone(LoanServiceError):
    code = "invalid_phone"
    default_message = (
        "Please enter a valid Kenyan phone number "
        "(9 digits like 713159136 or full format 254713159136)"
    )


class PaymentConflict(LoanServiceError):
    code = "payment_conflict"
    default_message = "Another payment attempt for this application is in progress."


class UnknownCallback(LoanServiceError):
    code = "unknown_callback"
    default_message = "Application not found"


class ServerError(LoanServiceError):
    code = "server_error"
    default_message = "Failed to initiate payment. Please try again later."


class RequestTimeout(LoanServiceError):
    code = "request_timeout"
    default_message = "Payment request timed out. Please try again."


class PaymentInitiationFailed(LoanServiceError):
    code = "payment_initiation_failed"
    default_message = "Payment initiation failed"

    def __init__(self, reason: str, details: dict | None = None) -> None:
        self.reason = reason
        super().__init__(f"Payment initiation failed: {reason}", details)


# Errors originating from the push-payment gateway.


class GatewayError(LoanServiceError):
    code = "gateway_error"
    default_message = "Failed to reach the payment gateway. Please check your connection and try again."


class AuthError(GatewayError):
    code = "gateway_auth_failed"
    default_message = "Failed to get access token"


class GatewayRejected(GatewayError):
    code = "gateway_rejected"
    default_message = "Unknown error"

    def __init__(self, reason: str | None = None, details: dict | None = None) -> None:
        self.reason = reason or self.default_message
        super().__init__(self.reason, details)


class GatewayTimeout(GatewayError):
    code = "gateway_timeout"
    default_message = "Payment request timed out. Please try again."


class GatewayNetworkError(GatewayError):
    code = "gateway_network_error"
