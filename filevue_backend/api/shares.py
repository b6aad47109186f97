"""Owner-side share management and the public share endpoints.

The public routes (verify, content, download) skip session auth: the
share id plus access code, and then the minted ``X-Share-Token``, are the
only credentials.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from .. import workspace
from ..errors import FileVueError, InvalidInput
from ..observability import audit
from ..preview import build_preview, guess_mime, preview_limit
from ..shares import ShareAccess, clamp_duration_hours
from .deps import SHARE_TOKEN_HEADER, AppState, Guards
from .schemas import CreateShareRequest


def _share_content(access: ShareAccess, max_preview_bytes: int, image_preview_max_bytes: int) -> dict:
    target = access.path
    if target.is_dir():
        entries = workspace.list_entries(access.sandbox, target)
        return {
            "type": "directory",
            "name": target.name,
            "path": access.relative(),
            "entries": [e.to_dict() for e in entries],
        }

    st = target.stat()
    mime = guess_mime(target) or "application/octet-stream"
    payload = {
        "type": "file",
        "name": target.name,
        "path": access.relative(),
        "size": st.st_size,
        "mimeType": mime,
    }
    # Inside a share an oversized file is described, not refused.
    if st.st_size > preview_limit(mime, max_preview_bytes, image_preview_max_bytes):
        payload["previewType"] = "too-large"
        payload["note"] = "File too large for preview. Use download."
        return payload
    payload.update(build_preview(target.read_bytes(), mime))
    return payload


def create_share_router(state: AppState, guards: Guards) -> APIRouter:
    router = APIRouter(prefix="/shares", tags=["shares"])
    registry = state.shares
    settings = state.settings
    owner = [Depends(guards.require_auth)]
    owner_write = [Depends(guards.require_auth), Depends(guards.require_csrf)]

    @router.post("", dependencies=owner_write)
    async def create_share(body: CreateShareRequest, request: Request):
        record = await run_in_threadpool(registry.create, body.path, body.expiresInHours)
        hours = clamp_duration_hours(body.expiresInHours)
        audit(request, "SHARE_CREATED", share_id=record.id, target=record.target_path, hours=hours)
        return {
            "shareId": record.id,
            "accessCode": record.access_code,
            "shareUrl": f"/share/{record.id}",
            "expiresAt": int(record.expires_at * 1000),
            "expiresIn": f"{hours:g} hours",
            "name": record.name,
            "isDirectory": record.is_directory,
        }

    @router.get("", dependencies=owner)
    async def list_shares():
        return {"shares": [r.to_summary() for r in registry.list()]}

    @router.delete("/{share_id}", dependencies=owner_write)
    async def delete_share(share_id: str, request: Request):
        registry.delete(share_id)
        audit(request, "SHARE_DELETED", share_id=share_id)
        return {"success": True, "message": "Share deleted."}

    @router.get("/{share_id}/verify")
    async def verify_share(share_id: str, request: Request, code: Optional[str] = None):
        if not code:
            raise InvalidInput("Access code is required.", reason="access_code_missing")
        try:
            token, record = await run_in_threadpool(registry.verify, share_id, code)
        except FileVueError as exc:
            audit(request, "SHARE_VERIFY_FAILED", share_id=share_id, reason=exc.reason)
            raise
        audit(request, "SHARE_VERIFIED", share_id=share_id)
        return {
            "valid": True,
            "accessToken": token,
            "name": record.name,
            "isDirectory": record.is_directory,
            "expiresAt": int(record.expires_at * 1000),
        }

    @router.get("/{share_id}/content")
    async def share_content(
        share_id: str,
        path: Optional[str] = None,
        share_token: Optional[str] = Header(None, alias=SHARE_TOKEN_HEADER),
    ):
        access = await run_in_threadpool(registry.access, share_id, share_token, path)
        return await run_in_threadpool(
            _share_content, access, settings.max_preview_bytes, settings.image_preview_max_bytes
        )

    @router.get("/{share_id}/download")
    async def share_download(
        share_id: str,
        request: Request,
        path: Optional[str] = None,
        share_token: Optional[str] = Header(None, alias=SHARE_TOKEN_HEADER),
    ):
        access = await run_in_threadpool(registry.access, share_id, share_token, path)
        if access.path.is_dir():
            raise InvalidInput("Cannot download directories directly.", reason="share_download_directory")
        audit(request, "SHARE_DOWNLOADED", share_id=share_id, file=access.relative())
        return FileResponse(access.path, filename=access.path.name, headers={"Cache-Control": "no-store"})

    return router
