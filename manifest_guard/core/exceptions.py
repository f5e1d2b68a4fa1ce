"""Domain exception hierarchy mapped to HTTP responses in ``main``."""


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at class level; the message
    is shown to the operator verbatim.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(AppException):
    code = "CONFLICT"
    status_code = 409


class InvoiceStateError(ConflictError):
    """The invoice is not in a state the operation applies to."""
    code = "INVOICE_STATE_CONFLICT"
    status_code = 400


class ValidationFailureError(AppException):
    code = "VALIDATION_FAILURE"
    status_code = 400


class NoNewReturnsError(ValidationFailureError):
    code = "NO_NEW_RETURNS"


class NoNewDeliveriesError(ValidationFailureError):
    code = "NO_NEW_DELIVERIES"


class GuardBlockedError(AppException):
    code = "GUARD_BLOCKED"
    status_code = 400


class OverrideRejectedError(GuardBlockedError):
    """The supplied override PIN was wrong, locked out or not configured."""
    code = "OVERRIDE_REJECTED"


class ExternalServiceError(AppException):
    """The invoicing ledger refused or failed the call."""
    code = "EXTERNAL_SERVICE_FAILURE"
    status_code = 400
