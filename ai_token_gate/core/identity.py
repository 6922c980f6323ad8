"""
Identity context.

The invoker receives an identity context explicitly instead of reading a
global session. A context answers one question: who, if anyone, is the
authenticated user making this request.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from jose import JWTError, jwt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """An authenticated user."""
    user_id: str


class IdentityContext:
    """Base identity context."""

    def current_identity(self) -> Optional[Identity]:
        raise NotImplementedError


class StaticIdentity(IdentityContext):
    """Context with a fixed identity, or none at all."""

    def __init__(self, identity: Optional[Identity] = None):
        self.identity = identity

    @classmethod
    def for_user(cls, user_id: str) -> "StaticIdentity":
        return cls(Identity(user_id=user_id))

    def current_identity(self) -> Optional[Identity]:
        return self.identity


class SessionTokenVerifier:
    """Verifies HS256 session JWTs issued by the identity provider.

    The user id is read from the ``sub`` claim.
    """

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("secret is required and cannot be empty")
        self.secret = secret
        self.algorithm = algorithm

    def verify(self, token: str) -> Optional[Identity]:
        """Return the identity for a valid token, None otherwise."""
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.info("Rejected session token: %s", e)
            return None

        user_id = claims.get("sub")
        if not user_id:
            logger.info("Rejected session token without subject")
            return None
        return Identity(user_id=str(user_id))

    def issue(self, user_id: str, **claims) -> str:
        """Sign a session token for ``user_id``; used by the CLI and tests."""
        payload = {"sub": user_id}
        payload.update(claims)
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)


class BearerTokenIdentity(IdentityContext):
    """Context resolved from an ``Authorization: Bearer <token>`` header."""

    def __init__(self, verifier: SessionTokenVerifier, authorization: Optional[str]):
        self.verifier = verifier
        self.authorization = authorization

    def current_identity(self) -> Optional[Identity]:
        if not self.authorization or not self.authorization.lower().startswith("bearer "):
            return None
        token = self.authorization.split(" ", 1)[1].strip()
        if not token:
            return None
        return self.verifier.verify(token)
