"""Browsing, preview, download and write routes for the root directory."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from .. import workspace
from ..errors import InvalidInput, TooLarge, UnsupportedMediaType
from ..observability import audit
from .deps import AppState, Guards
from .schemas import CreateFileRequest, CreateFolderRequest, RenameRequest

MAX_UPLOAD_FILES = 10


def create_file_router(state: AppState, guards: Guards, prefix: str) -> APIRouter:
    """Read-only file routes. Mounted under both ``/file`` and ``/files``."""
    router = APIRouter(prefix=prefix, tags=["files"], dependencies=[Depends(guards.require_auth)])
    sandbox = state.sandbox
    settings = state.settings

    @router.get("/content")
    async def content(path: Optional[str] = None):
        return await run_in_threadpool(
            workspace.read_preview,
            sandbox,
            path,
            max_preview_bytes=settings.max_preview_bytes,
            image_preview_max_bytes=settings.image_preview_max_bytes,
        )

    @router.get("/thumbnail")
    async def thumbnail(path: Optional[str] = None):
        return await run_in_threadpool(workspace.read_thumbnail, sandbox, path, max_bytes=settings.thumbnail_max_bytes)

    @router.get("/download")
    async def download(request: Request, path: Optional[str] = None):
        target = await run_in_threadpool(workspace.resolve_download, sandbox, path)
        audit(request, "FILE_DOWNLOADED", file=sandbox.relative(target))
        return FileResponse(target, filename=target.name, headers={"Cache-Control": "no-store"})

    return router


def create_write_router(state: AppState, guards: Guards) -> APIRouter:
    """Tree listing plus every mutating route; writes need write mode and CSRF."""
    router = APIRouter(tags=["files"], dependencies=[Depends(guards.require_auth)])
    sandbox = state.sandbox
    settings = state.settings
    write_guards = [Depends(guards.require_writable), Depends(guards.require_csrf)]

    @router.get("/tree")
    async def tree(path: Optional[str] = None):
        return await run_in_threadpool(workspace.list_directory, sandbox, path)

    @router.post("/files", dependencies=write_guards)
    async def create_file(body: CreateFileRequest, request: Request):
        rel = await run_in_threadpool(
            workspace.create_file, sandbox, body.parentPath, body.name, body.content, body.encoding
        )
        audit(request, "FILE_CREATED", file=rel)
        return JSONResponse({"message": "File created.", "path": rel}, status_code=201)

    @router.post("/files/upload", dependencies=write_guards)
    async def upload(
        request: Request,
        files: List[UploadFile] = File(default=[]),
        path: str = Form("."),
    ):
        if not files:
            raise InvalidInput("No files provided.", reason="upload_empty")
        if len(files) > MAX_UPLOAD_FILES:
            raise InvalidInput(f"At most {MAX_UPLOAD_FILES} files per upload.", reason="upload_too_many")

        # Validate everything before writing anything.
        for upload_file in files:
            if not workspace.upload_allowed(upload_file.filename or "", settings.allowed_upload_mimes):
                audit(request, "UPLOAD_REJECTED", reason="invalid_file_type", filename=upload_file.filename)
                raise UnsupportedMediaType(
                    f"File type not allowed: {upload_file.filename}", reason="upload_type_rejected"
                )

        pending = []
        for upload_file in files:
            destination = await run_in_threadpool(workspace.upload_destination, sandbox, path, upload_file.filename)
            # Limit read to reject oversized uploads without buffering them whole.
            data = await upload_file.read(settings.max_upload_bytes + 1)
            if len(data) > settings.max_upload_bytes:
                raise TooLarge(
                    f"File exceeds maximum size of {settings.max_upload_bytes} bytes.",
                    reason="upload_too_large",
                )
            pending.append((destination, data))

        uploaded = []
        for destination, data in pending:
            await run_in_threadpool(workspace.write_upload, destination, data)
            uploaded.append({"name": destination.name, "path": sandbox.relative(destination), "size": len(data)})
        audit(request, "FILES_UPLOADED", files=[f["name"] for f in uploaded])
        return JSONResponse({"message": "Files uploaded.", "files": uploaded}, status_code=201)

    @router.post("/folders", dependencies=write_guards)
    async def create_folder(body: CreateFolderRequest, request: Request):
        rel = await run_in_threadpool(workspace.create_folder, sandbox, body.parentPath, body.name)
        audit(request, "FOLDER_CREATED", folder=rel)
        return JSONResponse({"message": "Folder created.", "path": rel}, status_code=201)

    @router.delete("/entries", dependencies=write_guards)
    async def delete_entry(request: Request, path: Optional[str] = None):
        rel = await run_in_threadpool(workspace.delete_entry, sandbox, path)
        audit(request, "ENTRY_DELETED", entry=rel)
        return {"message": "Entry deleted."}

    @router.post("/entries/rename", dependencies=write_guards)
    async def rename_entry(body: RenameRequest, request: Request):
        rel = await run_in_threadpool(workspace.rename_entry, sandbox, body.path, body.newName)
        audit(request, "ENTRY_RENAMED", source=body.path, destination=rel)
        return {"message": "Entry renamed.", "path": rel}

    return router
