"""Double-submit cookie CSRF defense.

On login the server sets a readable (non-HttpOnly) cookie holding a random
token and also returns the token in the response body. The browser client
echoes it in the ``X-CSRF-Token`` header on every state-changing request.
A cross-site attacker can make the browser send the cookie but cannot read
it to forge the header.
"""
from __future__ import annotations

import secrets

from .credentials import safe_compare
from .errors import CsrfError

CSRF_TOKEN_HEADER = "X-CSRF-Token"
CSRF_TOKEN_BYTES = 32  # 256-bit entropy
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class CsrfGuard:
    """Validates the cookie/header pair on mutating requests.

    With authentication disabled there is no session to ride on, so the
    guard is a no-op.
    """

    def __init__(self, *, enabled: bool) -> None:
        self.enabled = enabled

    def issue(self) -> str:
        return secrets.token_urlsafe(CSRF_TOKEN_BYTES)

    def applies_to(self, method: str) -> bool:
        return self.enabled and method.upper() not in SAFE_METHODS

    def validate(self, cookie_value: str | None, header_value: str | None) -> None:
        """Raise :class:`CsrfError` unless both values are present and equal."""
        if not self.enabled:
            return
        if not cookie_value:
            raise CsrfError(reason="missing_csrf_cookie")
        if not header_value:
            raise CsrfError(reason="missing_csrf_header")
        if not safe_compare(header_value, cookie_value):
            raise CsrfError(reason="csrf_token_mismatch")
