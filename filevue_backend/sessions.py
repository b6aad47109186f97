"""Session lifecycle: login, token validation and global invalidation.

Tokens are HS256 JWTs carrying the subject, issue/expiry times and the
session epoch that was current when they were minted. Bumping the epoch
("log everyone out") makes every earlier token fail on its next use
without keeping a revocation list. The epoch lives only in memory and
starts at 1 on every process start.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

import jwt  # PyJWT

from .credentials import hash_password, safe_compare, verify_password
from .csrf import CsrfGuard
from .errors import (
    InvalidCredentials,
    InvalidInput,
    InvalidToken,
    SessionInvalidated,
    Unauthenticated,
)
from .observability import get_logger

logger = get_logger(__name__)

TOKEN_ALGORITHM = "HS256"
DEFAULT_SESSION_TTL = 3600  # 1 hour
ANONYMOUS_SUBJECT = "anonymous"


class SessionEpoch:
    """Process-wide invalidation counter. Reads and bumps are atomic."""

    def __init__(self, start: int = 1) -> None:
        self._value = start
        self._lock = threading.Lock()

    @property
    def current(self) -> int:
        with self._lock:
            return self._value

    def bump(self) -> int:
        with self._lock:
            self._value += 1
            return self._value


@dataclass(frozen=True)
class Principal:
    subject: str
    session_epoch: int
    issued_at: float
    expires_at: float

    @property
    def is_anonymous(self) -> bool:
        return self.subject == ANONYMOUS_SUBJECT


@dataclass(frozen=True)
class LoginResult:
    token: str
    csrf_token: str
    expires_in: int
    principal: Principal


class SessionAuthority:
    """Single-tenant authentication against configured credentials.

    ``stored_password`` is either a ``scrypt:`` hash or, for old
    deployments, a plaintext password. Plaintext is hashed once here and
    only the hash is kept.
    """

    def __init__(
        self,
        *,
        secret: str,
        username: str | None,
        stored_password: str | None,
        ttl_seconds: int = DEFAULT_SESSION_TTL,
        csrf: CsrfGuard | None = None,
        epoch: SessionEpoch | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._secret = secret
        self._username = username or None
        if stored_password and not stored_password.startswith("scrypt:"):
            logger.warning(
                "plaintext_password_configured",
                hint="set EXPLORER_PASSWORD_HASH; plaintext passwords are deprecated",
            )
            stored_password = hash_password(stored_password)
        self._stored_password = stored_password or None
        self.ttl_seconds = int(ttl_seconds)
        self.auth_required = bool(self._username and self._stored_password)
        self.csrf = csrf or CsrfGuard(enabled=self.auth_required)
        self.epoch = epoch or SessionEpoch()
        self._clock = clock

    def login(self, username: str | None, password: str | None) -> LoginResult:
        if not self.auth_required:
            raise InvalidInput("Authentication is not enabled.", reason="auth_disabled")
        if not username or not password:
            raise InvalidInput("Username and password are required.", reason="missing_credentials")
        # Evaluate both so timing does not tell which one was wrong.
        username_ok = safe_compare(username, self._username)
        password_ok = verify_password(password, self._stored_password)
        if not (username_ok and password_ok):
            raise InvalidCredentials(reason="invalid_credentials")

        now = self._clock()
        epoch = self.epoch.current
        claims = {
            "sub": username,
            "iat": int(now),
            "exp": int(now) + self.ttl_seconds,
            "sv": epoch,
        }
        token = jwt.encode(claims, self._secret, algorithm=TOKEN_ALGORITHM)
        principal = Principal(
            subject=username,
            session_epoch=epoch,
            issued_at=claims["iat"],
            expires_at=claims["exp"],
        )
        return LoginResult(
            token=token,
            csrf_token=self.csrf.issue(),
            expires_in=self.ttl_seconds,
            principal=principal,
        )

    def authenticate(self, token: str | None) -> Principal:
        """Validate a session token and return who it belongs to.

        Raises Unauthenticated, InvalidToken or SessionInvalidated. The
        route layer answers all three with the same 401.
        """
        if not self.auth_required:
            now = self._clock()
            return Principal(ANONYMOUS_SUBJECT, self.epoch.current, now, now + self.ttl_seconds)
        if not token:
            raise Unauthenticated(reason="missing_token")
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[TOKEN_ALGORITHM],
                options={
                    "require": ["sub", "iat", "exp", "sv"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as exc:
            raise InvalidToken(reason=f"invalid_token:{type(exc).__name__}")

        if not isinstance(claims["exp"], (int, float)) or self._clock() >= claims["exp"]:
            raise InvalidToken(reason="token_expired")
        if claims["sv"] != self.epoch.current:
            raise SessionInvalidated(reason="stale_session_epoch")
        return Principal(
            subject=str(claims["sub"]),
            session_epoch=claims["sv"],
            issued_at=claims["iat"],
            expires_at=claims["exp"],
        )

    def status(self, token: str | None) -> bool:
        try:
            self.authenticate(token)
        except (Unauthenticated, InvalidToken, SessionInvalidated):
            return False
        return True

    def logout(self, token: str | None) -> str | None:
        """Nothing to revoke server-side; returns the subject for auditing."""
        if not token:
            return None
        try:
            return self.authenticate(token).subject
        except (Unauthenticated, InvalidToken, SessionInvalidated):
            return None

    def invalidate_all(self) -> int:
        new_epoch = self.epoch.bump()
        logger.info("session_epoch_bumped", session_epoch=new_epoch)
        return new_epoch
