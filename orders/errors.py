"""Marketplace error taxonomy.

Every error here is recoverable at the boundary of the user action that
raised it. Guards raise before any write, so a rejected action leaves state
exactly as it was.
"""


class MarketError(Exception):
    """Base class for marketplace errors."""
    pass


class UnauthenticatedError(MarketError):
    """Raised when an action has no acting identity."""
    pass


class ForbiddenError(MarketError):
    """Raised when the acting identity lacks rights for the action."""
    pass


class ForbiddenSelfOrder(ForbiddenError):
    """Raised when a seller tries to order their own gig."""

    def __init__(self, gig_id):
        self.gig_id = gig_id
        super().__init__("You cannot order your own gig")


class InvalidTransitionError(MarketError):
    """Raised when an order status change is not allowed by the state machine."""

    def __init__(self, from_status, to_status, message: str = ''):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Cannot transition order from {_value(from_status)} to {_value(to_status)}"
        )


class InvalidRatingTransition(InvalidTransitionError):
    """Raised when a rating is submitted outside the allowed conditions."""

    def __init__(self, status, message: str = ''):
        super().__init__(
            status,
            'rated',
            message or f"Orders can only be rated once delivered (status is {_value(status)})"
        )


class RatingForbiddenError(InvalidRatingTransition, ForbiddenError):
    """Raised when someone other than the buyer tries to rate an order."""

    def __init__(self, status):
        super().__init__(status, "Only the buyer can rate this order")


class DuplicateRatingError(InvalidRatingTransition):
    """Raised when an order already carries a rating."""

    def __init__(self, order_id, status='delivered'):
        self.order_id = order_id
        super().__init__(status, f"Order {order_id} has already been rated")


class NotFoundError(MarketError):
    """Raised when a referenced entity does not exist."""
    pass


class ConflictError(MarketError):
    """Raised when a concurrent write or a constraint wins over this action."""
    pass


class ValidationFailedError(MarketError):
    """Raised when input is outside its allowed domain."""
    pass


def _value(status) -> str:
    return getattr(status, 'value', status)


__all__ = [
    'MarketError',
    'UnauthenticatedError',
    'ForbiddenError',
    'ForbiddenSelfOrder',
    'InvalidTransitionError',
    'InvalidRatingTransition',
    'RatingForbiddenError',
    'DuplicateRatingError',
    'NotFoundError',
    'ConflictError',
    'ValidationFailedError'
]
