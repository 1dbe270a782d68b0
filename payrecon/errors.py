"""
Error taxonomy.

A lost race is not an error: reconcile() reports it as applied=False.
Only the conditions below abort a request.
"""


class PaymentError(Exception):
    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PaymentError):
    """Missing or malformed identity fields. Not retried."""
    status_code = 400


class AuthError(PaymentError):
    """Missing or invalid bearer credential. Not retried."""
    status_code = 401


class DuplicateActiveError(PaymentError):
    """An unexpired pending intent already exists for the identity."""
    status_code = 409


class LedgerError(PaymentError):
    """Store unreachable or statement failed. Safe to retry."""
    status_code = 500
    retryable = True
