"""Translation of marketplace errors to HTTP responses."""

from fastapi import HTTPException, status

from orders.errors import (
    MarketError,
    UnauthenticatedError,
    NotFoundError,
    ForbiddenError,
    InvalidTransitionError,
    ConflictError,
    ValidationFailedError
)

# First match wins; ForbiddenError precedes InvalidTransitionError because
# a non-buyer rating is both
STATUS_BY_ERROR = (
    (UnauthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationFailedError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def http_error(error: MarketError) -> HTTPException:
    """Build the HTTPException for a marketplace error."""
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
