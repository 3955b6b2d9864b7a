# app/errors.py
"""
Error kinds raised by the invoice subsystem.

The API layer maps each of these to an HTTP response in app/main.py.
"""


class InvoiceServiceError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(InvoiceServiceError):
    """Bad operator input. Nothing was persisted."""

    status_code = 400


class NotFoundError(InvoiceServiceError):
    status_code = 404


class AuthenticationError(InvoiceServiceError):
    """Webhook signature could not be verified."""

    status_code = 400


class ConfigurationError(InvoiceServiceError):
    """A required secret or credential is not configured on the server."""

    status_code = 500


class ExternalServiceError(InvoiceServiceError):
    """The payment processor call failed or timed out."""

    status_code = 502
