"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class PaymentValidationError(DomainException):
    """Request is malformed, contradictory or violates a payment invariant"""

    pass


class InvalidPaymentStateError(PaymentValidationError):
    """Operation is not allowed from the payment's current status"""

    pass


class TokenError(DomainException):
    """Token is unknown, inactive or cannot change to the requested status"""

    pass


class RoutingError(DomainException):
    """No priced routing option exists for the candidate networks"""

    pass


class RiskRejectedError(DomainException):
    """Risk assessment landed in the CRITICAL band"""

    def __init__(self, message: str, score: float | None = None):
        super().__init__(message)
        self.score = score


class ProcessorError(DomainException):
    """Card processor call failed, raised, or returned a negative result"""

    pass


class PaymentNotFoundError(DomainException):
    """No payment with this id exists for the requesting merchant"""

    pass


class ConcurrentModificationError(DomainException):
    """Stored record changed since it was read (optimistic version mismatch)"""

    pass
