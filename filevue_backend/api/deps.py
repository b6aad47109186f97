"""Shared request guards for the API routers.

The routers get one :class:`AppState` and pull their guards from it as
FastAPI dependencies, so every app instance (and every test) carries its
own sessions, shares and limiters.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request, Response

from ..config import Settings
from ..csrf import CSRF_TOKEN_HEADER
from ..errors import AuthenticationError, CsrfError, ReadOnlyError
from ..observability import audit, client_ip
from ..ratelimit import API_LIMIT, LOGIN_LIMIT, SlidingWindowCounter
from ..sandbox import PathSandbox
from ..search import SearchEngine
from ..sessions import LoginResult, SessionAuthority
from ..shares import ShareRegistry

SHARE_TOKEN_HEADER = "X-Share-Token"


@dataclass
class AppState:
    settings: Settings
    sandbox: PathSandbox
    sessions: SessionAuthority
    shares: ShareRegistry
    search: SearchEngine
    api_limiter: SlidingWindowCounter = field(default_factory=lambda: SlidingWindowCounter(API_LIMIT))
    login_limiter: SlidingWindowCounter = field(default_factory=lambda: SlidingWindowCounter(LOGIN_LIMIT))

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppState":
        sandbox = PathSandbox(settings.root_directory)
        return cls(
            settings=settings,
            sandbox=sandbox,
            sessions=SessionAuthority(
                secret=settings.session_secret,
                username=settings.auth_username,
                stored_password=settings.stored_password,
                ttl_seconds=settings.session_ttl_seconds,
            ),
            shares=ShareRegistry(sandbox),
            search=SearchEngine(
                sandbox,
                max_limit=settings.search_max_results,
                max_timeout_ms=settings.search_max_timeout_ms,
            ),
        )


def extract_token(request: Request, cookie_name: str) -> str | None:
    header = request.headers.get("authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return request.cookies.get(cookie_name) or None


class Guards:
    """Dependencies bound to one :class:`AppState`."""

    def __init__(self, state: AppState) -> None:
        self.state = state

    def rate_limit(self, request: Request) -> None:
        if request.url.path == "/api/health":
            return
        self.state.api_limiter.check(client_ip(request))

    def require_auth(self, request: Request) -> None:
        if request.method == "OPTIONS":
            return
        token = extract_token(request, self.state.settings.session_cookie_name)
        try:
            request.state.user = self.state.sessions.authenticate(token)
        except AuthenticationError as exc:
            audit(request, "AUTH_FAILURE", reason=exc.reason)
            raise

    def require_csrf(self, request: Request) -> None:
        guard = self.state.sessions.csrf
        if not guard.applies_to(request.method):
            return
        try:
            guard.validate(
                request.cookies.get(self.state.settings.csrf_cookie_name),
                request.headers.get(CSRF_TOKEN_HEADER),
            )
        except CsrfError as exc:
            audit(request, "CSRF_FAILURE", reason=exc.reason)
            raise

    def require_writable(self) -> None:
        if self.state.settings.read_only:
            raise ReadOnlyError(reason="read_only_mode")

    def set_session_cookies(self, response: Response, result: LoginResult) -> None:
        settings = self.state.settings
        max_age = result.expires_in
        response.set_cookie(
            settings.session_cookie_name,
            result.token,
            max_age=max_age,
            httponly=True,
            samesite="strict",
            secure=settings.cookie_secure,
        )
        # Readable by the browser client so it can echo it in the header.
        response.set_cookie(
            settings.csrf_cookie_name,
            result.csrf_token,
            max_age=max_age,
            httponly=False,
            samesite="strict",
            secure=settings.cookie_secure,
        )

    def clear_session_cookies(self, response: Response) -> None:
        settings = self.state.settings
        response.delete_cookie(
            settings.session_cookie_name, httponly=True, samesite="strict", secure=settings.cookie_secure
        )
        response.delete_cookie(
            settings.csrf_cookie_name, httponly=False, samesite="strict", secure=settings.cookie_secure
        )
