"""Login, logout, status and global session invalidation."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from starlette.concurrency import run_in_threadpool

from ..errors import InvalidCredentials
from ..observability import audit, client_ip
from .deps import AppState, Guards, extract_token
from .schemas import LoginRequest


def create_auth_router(state: AppState, guards: Guards) -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["auth"])
    sessions = state.sessions
    cookie_name = state.settings.session_cookie_name

    @router.get("/status")
    async def status(request: Request):
        if not sessions.auth_required:
            return {"authRequired": False, "authenticated": True, "sessionTtlSeconds": sessions.ttl_seconds}
        authenticated = sessions.status(extract_token(request, cookie_name))
        return {"authRequired": True, "authenticated": authenticated, "sessionTtlSeconds": sessions.ttl_seconds}

    @router.post("/login")
    async def login(body: LoginRequest, request: Request, response: Response):
        if not sessions.auth_required:
            return {"authRequired": False}
        state.login_limiter.check(client_ip(request))
        try:
            # scrypt verification runs off the event loop.
            result = await run_in_threadpool(sessions.login, body.username, body.password)
        except InvalidCredentials:
            audit(request, "LOGIN_FAILURE", username=body.username)
            raise
        guards.set_session_cookies(response, result)
        audit(request, "LOGIN_SUCCESS", username=result.principal.subject)
        return {"authenticated": True, "expiresIn": result.expires_in, "csrfToken": result.csrf_token}

    @router.post("/logout")
    async def logout(request: Request, response: Response):
        if not sessions.auth_required:
            return {"authRequired": False}
        subject = sessions.logout(extract_token(request, cookie_name))
        audit(request, "LOGOUT", username=subject)
        guards.clear_session_cookies(response)
        return {"message": "Logged out."}

    @router.post(
        "/invalidate-sessions",
        dependencies=[Depends(guards.require_auth), Depends(guards.require_csrf)],
    )
    async def invalidate_sessions(request: Request, response: Response):
        if not sessions.auth_required:
            return {"authRequired": False}
        new_version = sessions.invalidate_all()
        audit(request, "SESSIONS_INVALIDATED", new_version=new_version)
        guards.clear_session_cookies(response)
        return {"message": "All sessions invalidated.", "newVersion": new_version}

    return router
