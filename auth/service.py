"""
auth/service.py -- Login, logout and token-to-user verification.

A bearer token moves through three states:

    Anonymous --login()--> Authenticated --logout()--> Revoked

Only the Revoked transition is stored; Authenticated is implied by a valid
signature and an unexpired exp claim. logout() stores a token only while it
is still Authenticated, so the revocation table never holds rows that could
outlive the token itself.

Username enumeration [C1]:
  login() always runs bcrypt, even when the username does not exist, against
  a dummy hash computed once per service. The unknown-user and wrong-password
  paths therefore cost the same and raise the same InvalidCredentials.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

import logging

from auth.models import User
from auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from auth.store import CredentialStore
from auth.tokens import TokenService
from core.errors import InvalidCredentials, InvalidTokenError, TokenRevoked, UserNotFound

logger = logging.getLogger("useraccounts.auth")


class AuthService:
    """Orchestrates credential checks, token issuance and revocation.

    Usage:
        auth = AuthService(store, TokenService(secret), bcrypt_rounds=12)
        token = auth.login("alice", "secret123")
        user = auth.verify_user(token)
        auth.logout(token)
    """

    def __init__(self, store: CredentialStore, tokens: TokenService, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
        self.store = store
        self.tokens = tokens
        # Same cost factor as real hashes so both login failure paths take equal time.
        self._dummy_hash = hash_password("useraccounts_timing_dummy", rounds=bcrypt_rounds)

    def login(self, username: str, password: str) -> str:
        """Check credentials and return a freshly issued token.

        Raises InvalidCredentials for an unknown username and for a wrong
        password alike. StorageError from the lookup propagates unchanged.
        """
        user = self.store.find_by_username(username)
        if user is None or not user.hashed_password:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            verify_password(password, self._dummy_hash)
            logger.info("Login failed")
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed")
            raise InvalidCredentials()
        token = self.tokens.issue(user.id)
        logger.info("Login succeeded for user_id=%s", user.id)
        return token

    def logout(self, token: str) -> None:
        """Revoke a token. Calling it again for the same token is a no-op.

        Only a token that still verifies is stored, keyed to its own exp claim
        so the purge sweep can drop the row once the token would be rejected
        anyway. An invalid or expired token is already unusable, so it is
        ignored and the call still succeeds.
        """
        try:
            claims = self.tokens.verify(token)
        except InvalidTokenError:
            logger.info("Logout with an invalid or expired token ignored")
            return
        self.store.insert_revoked_token(token, float(claims.expires_at))
        logger.info("Token revoked for user_id=%s", claims.user_id)

    def verify_user(self, token: str) -> User:
        """Resolve a token to its live user.

        Order matters: signature/expiry first (InvalidTokenError), then the
        revocation list (TokenRevoked), then the identity lookup (UserNotFound,
        e.g. the user was deleted after the token was issued).
        """
        claims = self.tokens.verify(token)
        if self.store.is_revoked(token):
            raise TokenRevoked()
        user = self.store.find_by_id(claims.user_id)
        if user is None:
            raise UserNotFound()
        return user
