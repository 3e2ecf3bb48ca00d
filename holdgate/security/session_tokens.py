from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urlparse

import jwt

logger = logging.getLogger(__name__)


class SessionTokenError(ValueError):
    pass


@dataclass(frozen=True)
class SessionTokenClaims:
    shop: str
    user_id: str | None


def bearer_token(authorization_header: str | None) -> str | None:
    if not authorization_header or not authorization_header.startswith('Bearer '):
        return None
    return authorization_header[len('Bearer ') :].strip() or None


def decode_session_token(token: str, *, secret: str, audience: str) -> SessionTokenClaims:
    """Verify an HS256 session token and return the shop it was issued for.

    Signature, ``exp``, ``nbf`` and ``aud`` are all checked before any claim is
    trusted. The shop is the host of the ``dest`` claim.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=['HS256'],
            audience=audience,
            options={'require': ['exp', 'dest']},
        )
    except jwt.ExpiredSignatureError as exc:
        raise SessionTokenError('Token expired') from exc
    except jwt.InvalidAudienceError as exc:
        raise SessionTokenError('Invalid token audience') from exc
    except jwt.InvalidTokenError as exc:
        logger.warning('Session token verification failed: %s', exc)
        raise SessionTokenError('Invalid token signature') from exc

    shop = urlparse(str(payload['dest'])).hostname
    if not shop:
        raise SessionTokenError('Token has no shop destination')
    return SessionTokenClaims(shop=shop, user_id=payload.get('sub'))
