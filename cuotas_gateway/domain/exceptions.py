"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    kind = "domain_error"


class ValidationError(DomainException):
    """Plan or enrollment data violates an invariant"""

    kind = "validation_error"

    def __init__(self, message: str, problems: list[str] | None = None):
        super().__init__(message)
        self.problems = problems or [message]


class ConflictError(DomainException):
    """Operation not allowed from the current state (e.g. disallowed installment transition)"""

    kind = "conflict"


class NotFoundError(DomainException):
    """Unknown plan code, enrollment id or installment id"""

    kind = "not_found"


class PolicyViolation(DomainException):
    """Plan has no policy configured for the requested operation"""

    kind = "policy_violation"


class PaymentGatewayError(DomainException):
    """Payment gateway returned an error or is unavailable"""

    kind = "payment_gateway_unavailable"
