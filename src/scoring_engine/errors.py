"""
Error taxonomy shared by the scoring engines and the HTTP layer.

Every error carries a human-readable message and an HTTP-style status code.
Nothing here is retried.
"""


class ScoringError(Exception):
    """Base class for all scoring engine failures"""

    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {'success': False, 'message': self.message}


class NotFoundError(ScoringError):
    """Record, installment or segment is missing"""
    status_code = 404


class InvalidStateError(ScoringError):
    """Operation is not allowed in the record's current state"""
    status_code = 400


class AlreadyPaidError(InvalidStateError):
    """Installment was already paid"""

    def __init__(self, installment_number: int):
        super().__init__(f"Installment {installment_number} already paid")
        self.installment_number = installment_number


class InsufficientCreditError(InvalidStateError):
    """BNPL credit does not cover the requested amount"""


class ValidationError(ScoringError):
    """Missing required field or out-of-range value"""
    status_code = 400
