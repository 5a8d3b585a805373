"""Authentication module for verifying access tokens.

Accounts, sign-up and login belong to the external auth provider. This
module only verifies the bearer tokens it issues:
1. Signature and expiry checked with the shared secret
2. Audience claim checked against settings
3. The ``sub`` claim is the acting user's id
"""

import logging
from typing import Optional
from uuid import UUID

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, ExpiredSignatureError, JWTError

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base exception for authentication errors."""
    pass


class SessionExpiredError(AuthError):
    """Raised when a token has expired."""
    pass


class TokenVerifier:
    """Verifies access tokens signed by the auth provider."""

    def __init__(self, secret: str, audience: Optional[str] = 'authenticated', algorithm: str = 'HS256'):
        self.secret = secret
        self.audience = audience
        self.algorithm = algorithm

    def verify(self, token: str) -> UUID:
        """Verify a token and return the user id it was issued for.

        Raises:
            SessionExpiredError: If the token has expired
            AuthError: For any other verification failure
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={'verify_aud': self.audience is not None}
            )
        except ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except JWTError as e:
            raise AuthError(f"Invalid token: {str(e)}")

        subject = payload.get('sub')
        try:
            return UUID(str(subject))
        except ValueError:
            raise AuthError("Token has no valid subject")


_verifier: Optional[TokenVerifier] = None


def set_verifier(verifier: Optional[TokenVerifier]) -> None:
    """Install the verifier used by request dependencies."""
    global _verifier
    _verifier = verifier


def get_verifier() -> TokenVerifier:
    """Get the installed verifier, building one from settings on first use."""
    global _verifier
    if _verifier is None:
        from config import get_settings
        settings = get_settings()
        _verifier = TokenVerifier(
            settings['jwt_secret'],
            audience=settings.get('jwt_audience') or None,
            algorithm=settings.get('jwt_algorithm', 'HS256')
        )
    return _verifier


# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=False,
    description="Access token from the auth provider"
)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> UUID:
    """FastAPI dependency for getting the authenticated user id.

    Raises:
        HTTPException: If the token is missing or invalid
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"}
        )
    try:
        return get_verifier().verify(credentials.credentials)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has expired",
            headers={"WWW-Authenticate": "Bearer"}
        )
    except AuthError as e:
        logger.info(f"Rejected token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"}
        )


# Export public interface
__all__ = [
    'TokenVerifier',
    'get_verifier',
    'set_verifier',
    'get_current_user',
    'AuthError',
    'SessionExpiredError'
]
