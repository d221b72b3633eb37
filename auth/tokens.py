"""
auth/tokens.py -- Bearer token issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry user_id, iat and exp and are signed
       with the secret handed to TokenService at construction. There is no
       module-level secret: api/main.py builds one TokenService from Settings
       in the lifespan and shares it through app.state.

  Algorithm pinning: verify() passes algorithms=[HS256] to jwt.decode, so a
       token whose header names "none", HS512, RS256 or anything else is
       rejected before its signature is even considered. This closes the
       classic algorithm-substitution hole.

  Required claims: python-jose only checks exp when the claim is present, so
       require_exp / require_iat are switched on. A token without an expiry
       is never valid.

  Subject encoding: JSON has one number type. Decoders in other stacks hand
       the user_id back as a float, so verify() accepts 7 and 7.0 alike but
       rejects 7.5, "7" and true.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import TokenClaims
from core.errors import InvalidTokenError, SigningError

logger = logging.getLogger("useraccounts.auth")

ALGORITHM = "HS256"
DEFAULT_EXPIRE_SECONDS = 24 * 60 * 60

_DECODE_OPTIONS = {"require_exp": True, "require_iat": True}


class TokenService:
    """Issue and verify signed, time-bounded bearer tokens.

    Usage:
        tokens = TokenService(settings.secret_key, settings.token_expire_seconds)
        token = tokens.issue(user.id)
        claims = tokens.verify(token)      # raises InvalidTokenError
    """

    def __init__(self, secret_key: str, expire_seconds: int = DEFAULT_EXPIRE_SECONDS) -> None:
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, user_id: int) -> str:
        """Encode a signed JWT for user_id, valid for expire_seconds from now.

        Raises SigningError if no secret is configured or jose fails to sign.
        """
        if not self._secret_key:
            raise SigningError("Signing secret is not configured.")
        issued_at = datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.expire_seconds),
        }
        try:
            return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)
        except JWTError as exc:
            logger.error("JWT signing failed for user_id=%s", user_id)
            raise SigningError() from exc

    def verify(self, token: str) -> TokenClaims:
        """Decode and verify a JWT. Returns its claims or raises InvalidTokenError.

        One error type covers malformed, mis-signed, wrong-algorithm and
        expired tokens -- callers never need finer granularity.
        """
        if not self._secret_key:
            raise InvalidTokenError("Signing secret is not configured.")
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[ALGORITHM], options=_DECODE_OPTIONS)
        except JWTError as exc:
            raise InvalidTokenError(str(exc)) from exc
        return TokenClaims(
            user_id=_integral_claim(payload, "user_id"),
            issued_at=_integral_claim(payload, "iat"),
            expires_at=_integral_claim(payload, "exp"),
        )


def _integral_claim(payload: dict, name: str) -> int:
    """Return payload[name] as an exact int; reject bools, strings and fractions."""
    raw = payload.get(name)
    if isinstance(raw, bool):
        raise InvalidTokenError(f"Claim {name!r} is not numeric.")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    raise InvalidTokenError(f"Claim {name!r} is missing or not an integer.")
