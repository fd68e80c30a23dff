import logging
import time
from typing import Callable, NamedTuple, Optional

import jwt
from passlib.context import CryptContext
from passlib.exc import PasswordSizeError

from .errors import InternalFailure, TokenBadSignature, TokenExpired, TokenMalformed
from .models import Role

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60 * 24  # 1 day


class PasswordHasher:
    """Salted, slow, self-describing password hashes.

    Uses pbkdf2_sha256 by default to avoid the bcrypt 72-byte limitation in
    some environments; bcrypt hashes are still accepted for verification.
    """

    def __init__(self, context: Optional[CryptContext] = None):
        self.context = context or CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
        self._dummy_hash = None

    def hash(self, password: str) -> str:
        try:
            return self.context.hash(password)
        except Exception as e:
            # e.g. no entropy source; the plaintext is never part of the log line
            logger.error("password hashing failed: %s", type(e).__name__)
            raise InternalFailure() from e

    def verify(self, password: str, hashed: str) -> bool:
        try:
            return self.context.verify(password, hashed)
        except PasswordSizeError:
            # Longer than any password we would have hashed
            return False
        except (ValueError, TypeError):
            logger.warning("stored password hash could not be parsed")
            return False

    def dummy_verify(self, password: str) -> bool:
        # Same cost as a real check, for logins against unknown accounts
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("not-a-real-password")
        self.verify(password, self._dummy_hash)
        return False

    def needs_update(self, hashed: str) -> bool:
        return self.context.needs_update(hashed)


class TokenClaims(NamedTuple):
    account_id: str
    role: Optional[Role]
    issued_at: int
    expires_at: int


class TokenService:
    """Issues and verifies signed, time-bounded session tokens.

    The signing secret, lifetime and clock are injected so each app (and
    each test) gets its own isolated key and can simulate time passing.
    """

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ):
        if not secret:
            raise ValueError("token signing secret must not be empty")
        if ttl_seconds <= 0:
            raise ValueError("token ttl must be positive")
        self._secret = secret
        self.ttl_seconds = ttl_seconds
        self.algorithm = algorithm
        self.clock = clock

    def issue(self, account_id: str, role: Optional[Role] = None) -> str:
        now = int(self.clock())
        payload = {"sub": str(account_id), "iat": now, "exp": now + self.ttl_seconds}
        if role is not None:
            payload["role"] = Role(role).value
        try:
            return jwt.encode(payload, self._secret, algorithm=self.algorithm)
        except jwt.PyJWTError as e:
            logger.error("token signing failed: %s", type(e).__name__)
            raise InternalFailure() from e

    def verify(self, token: str) -> TokenClaims:
        try:
            # Expiry is checked below against the injected clock
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["sub", "exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidSignatureError as e:
            raise TokenBadSignature() from e
        except jwt.PyJWTError as e:
            raise TokenMalformed() from e

        sub, exp, iat = payload.get("sub"), payload.get("exp"), payload.get("iat")
        if not isinstance(sub, str) or not sub:
            raise TokenMalformed()
        if not isinstance(exp, int) or not isinstance(iat, int) or isinstance(exp, bool):
            raise TokenMalformed()
        try:
            role = Role(payload["role"]) if "role" in payload else None
        except ValueError as e:
            raise TokenMalformed() from e

        if self.clock() >= exp:
            raise TokenExpired()
        return TokenClaims(account_id=sub, role=role, issued_at=iat, expires_at=exp)
