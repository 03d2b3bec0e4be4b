from typing import Optional


class LoanServiceError(Exception):
    """Base class for errors raised by the loan back-office core."""


class ValidationError(LoanServiceError):
    """
    Illegal status transition or a missing/invalid required field.
    `field` names the offending payload field when there is one.
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class InvalidArgumentError(LoanServiceError):
    """Calculator input outside its domain, e.g. a period count of zero."""


class NotFoundError(LoanServiceError):
    pass


class ConflictError(LoanServiceError):
    pass
