"""Health and server metadata routes."""
from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from .. import __version__
from .deps import AppState, Guards


def create_meta_router(state: AppState, guards: Guards) -> APIRouter:
    router = APIRouter(tags=["meta"])
    settings = state.settings

    @router.get("/health")
    async def health():
        return {"status": "ok", "timestamp": int(time.time() * 1000)}

    @router.get("/meta", dependencies=[Depends(guards.require_auth)])
    async def meta():
        return {
            "version": __version__,
            "rootDirectory": str(state.sandbox.root),
            "readOnly": settings.read_only,
            "authRequired": state.sessions.auth_required,
            "maxPreviewBytes": settings.max_preview_bytes,
            "imagePreviewMaxBytes": settings.image_preview_max_bytes,
            "thumbnailMaxBytes": settings.thumbnail_max_bytes,
            "maxUploadBytes": settings.max_upload_bytes,
        }

    return router
