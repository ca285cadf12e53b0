"""
JWT validation for bearer tokens issued by the identity provider.

Tokens are HS256-signed with a shared project secret; the only thing the
query pipeline needs from them is the subject (user id).
"""
import logging
from dataclasses import dataclass
from typing import Optional, Dict, Any

import jwt
from django.conf import settings

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Raised when a bearer token cannot be mapped to a user."""
    pass


@dataclass
class TokenClaims:
    """Validated token claims."""
    sub: str  # Subject (user ID)
    email: Optional[str]
    role: Optional[str]
    raw_claims: Dict[str, Any]


def validate_token(token: str) -> TokenClaims:
    """
    Validate a bearer JWT and return its claims.

    Checks signature, expiry, audience and (when configured) issuer,
    and requires a non-empty ``sub``.

    Raises:
        AuthError: If validation fails
    """
    secret = getattr(settings, 'AUTH_JWT_SECRET', '')
    if not secret:
        logger.error("AUTH_JWT_SECRET is not configured")
        raise AuthError("Token validation is not configured")

    algorithms = getattr(settings, 'AUTH_JWT_ALGORITHMS', ['HS256'])
    audience = getattr(settings, 'AUTH_JWT_AUDIENCE', '') or None
    issuer = getattr(settings, 'AUTH_JWT_ISSUER', '') or None

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=algorithms,
            audience=audience,
            issuer=issuer,
            options={
                'require': ['exp', 'sub'],
                'verify_aud': audience is not None,
                'verify_iss': issuer is not None,
            }
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("Token has expired")
    except jwt.InvalidAudienceError:
        raise AuthError("Invalid token audience")
    except jwt.InvalidIssuerError:
        raise AuthError("Invalid token issuer")
    except jwt.InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}")

    sub = claims.get('sub')
    if not sub or not isinstance(sub, str):
        raise AuthError("Token missing subject")

    return TokenClaims(
        sub=sub,
        email=claims.get('email'),
        role=claims.get('role'),
        raw_claims=claims,
    )
