"""Filesystem operations over the sandboxed root.

Each operation takes client-relative paths, resolves them through the
:class:`~filevue_backend.sandbox.PathSandbox` first and only then touches
the disk. Errors during a single-path operation are fatal to the request.
"""
from __future__ import annotations

import base64
import binascii
import os
import shutil
import stat
from pathlib import Path
from typing import Iterable

from .errors import Conflict, InvalidInput, NotFound, TooLarge, UnsupportedMediaType
from .preview import build_preview, guess_mime, is_image_mime, preview_limit
from .sandbox import PathSandbox, is_safe_basename
from .search import Entry, sort_entries


def _entry_for(sandbox: PathSandbox, path: Path) -> Entry | None:
    try:
        st = path.stat()
    except OSError:
        # Dangling symlink: describe the link itself.
        try:
            st = path.lstat()
        except OSError:
            return None
    is_dir = stat.S_ISDIR(st.st_mode)
    return Entry(
        name=path.name,
        path=sandbox.relative(path),
        is_directory=is_dir,
        size=st.st_size,
        modified=st.st_mtime_ns // 1_000_000,
        mime_type=None if is_dir else guess_mime(path.name),
    )


def list_entries(sandbox: PathSandbox, directory: Path) -> list[Entry]:
    entries: list[Entry] = []
    for child in directory.iterdir():
        entry = _entry_for(sandbox, child)
        if entry is not None:
            entries.append(entry)
    return sort_entries(entries)


def list_directory(sandbox: PathSandbox, relative_path: str | None) -> dict:
    target = sandbox.resolve(relative_path or ".")
    if not target.exists():
        raise NotFound("Path not found.", reason="tree_path_missing")
    if not target.is_dir():
        raise InvalidInput("Path must identify a directory.", reason="tree_not_directory")
    return {
        "path": sandbox.relative(target),
        "entries": [e.to_dict() for e in list_entries(sandbox, target)],
    }


def _require_file(sandbox: PathSandbox, relative_path: str | None) -> tuple[Path, os.stat_result]:
    if not relative_path:
        raise InvalidInput('Query parameter "path" is required.', reason="path_missing")
    target = sandbox.resolve(relative_path)
    try:
        st = target.stat()
    except FileNotFoundError:
        raise NotFound("Path not found.", reason="file_missing")
    if stat.S_ISDIR(st.st_mode):
        raise InvalidInput("Path resolves to a directory.", reason="path_is_directory")
    return target, st


def read_preview(
    sandbox: PathSandbox,
    relative_path: str | None,
    *,
    max_preview_bytes: int,
    image_preview_max_bytes: int,
) -> dict:
    target, st = _require_file(sandbox, relative_path)
    mime = guess_mime(target) or "application/octet-stream"
    limit = preview_limit(mime, max_preview_bytes, image_preview_max_bytes)
    if st.st_size > limit:
        raise TooLarge(
            "File exceeds preview size limit.",
            reason="preview_too_large",
            extra={"size": st.st_size, "maxPreviewBytes": limit},
        )
    payload = {
        "name": target.name,
        "path": sandbox.relative(target),
        "size": st.st_size,
        "modified": st.st_mtime_ns // 1_000_000,
        "mimeType": mime,
    }
    payload.update(build_preview(target.read_bytes(), mime))
    return payload


def read_thumbnail(sandbox: PathSandbox, relative_path: str | None, *, max_bytes: int) -> dict:
    target, st = _require_file(sandbox, relative_path)
    mime = guess_mime(target) or "application/octet-stream"
    if not is_image_mime(mime):
        raise UnsupportedMediaType("Thumbnails are supported for images only.", reason="thumbnail_not_image")
    if st.st_size > max_bytes:
        raise TooLarge(
            "Image exceeds thumbnail size limit.",
            reason="thumbnail_too_large",
            extra={"size": st.st_size, "maxPreviewBytes": max_bytes},
        )
    return {
        "path": sandbox.relative(target),
        "mimeType": mime,
        "encoding": "base64",
        "content": base64.b64encode(target.read_bytes()).decode("ascii"),
    }


def resolve_download(sandbox: PathSandbox, relative_path: str | None) -> Path:
    target, _ = _require_file(sandbox, relative_path)
    return target


def _child_path(sandbox: PathSandbox, parent_path: str | None, name: str | None) -> Path:
    name = (name or "").strip()
    if not is_safe_basename(name):
        raise InvalidInput("Name must be a single path component.", reason="invalid_name")
    parent = sandbox.resolve(parent_path or ".")
    if not parent.is_dir():
        raise NotFound("Parent directory not found.", reason="parent_missing")
    return parent / name


def create_file(
    sandbox: PathSandbox,
    parent_path: str | None,
    name: str | None,
    content: str = "",
    encoding: str = "utf-8",
) -> str:
    """Create a new file; never overwrites. Returns its root-relative path."""
    if not name:
        raise InvalidInput("File name is required.", reason="file_name_missing")
    destination = _child_path(sandbox, parent_path, name)
    if encoding == "base64":
        try:
            data = base64.b64decode(content or "", validate=True)
        except (binascii.Error, ValueError):
            raise InvalidInput("Content is not valid base64.", reason="invalid_base64")
    else:
        data = (content or "").encode("utf-8")
    try:
        # O_EXCL also refuses to follow a planted symlink at the destination.
        with open(destination, "xb") as fh:
            fh.write(data)
    except FileExistsError:
        raise Conflict("File already exists.", reason="file_exists")
    return sandbox.relative(destination)


def create_folder(sandbox: PathSandbox, parent_path: str | None, name: str | None) -> str:
    if not name or not name.strip():
        raise InvalidInput("Folder name is required.", reason="folder_name_missing")
    destination = _child_path(sandbox, parent_path, name)
    try:
        destination.mkdir()
    except FileExistsError:
        raise Conflict("Folder already exists.", reason="folder_exists")
    return sandbox.relative(destination)


def delete_entry(sandbox: PathSandbox, relative_path: str | None) -> str:
    if not relative_path:
        raise InvalidInput('Query parameter "path" is required.', reason="path_missing")
    target = sandbox.resolve_entry(relative_path)
    if sandbox.is_root(target):
        raise InvalidInput("Cannot delete the root directory.", reason="delete_root")
    if target.is_symlink() or not target.is_dir():
        target.unlink()
    else:
        shutil.rmtree(target)
    return sandbox.relative(target)


def rename_entry(sandbox: PathSandbox, relative_path: str | None, new_name: str | None) -> str:
    if not relative_path:
        raise InvalidInput("Path is required.", reason="path_missing")
    source = sandbox.resolve_entry(relative_path)
    if sandbox.is_root(source):
        raise InvalidInput("Cannot rename the root directory.", reason="rename_root")
    new_name = (new_name or "").strip()
    if not is_safe_basename(new_name):
        raise InvalidInput("Name must be a single path component.", reason="invalid_name")
    destination = source.parent / new_name
    if os.path.lexists(destination):
        raise Conflict("An entry with that name already exists.", reason="rename_target_exists")
    source.rename(destination)
    return sandbox.relative(destination)


def upload_allowed(filename: str, allowed_mimes: Iterable[str]) -> bool:
    """Check an upload's MIME type (by extension) against the allow-list.

    Entries ending in ``/*`` match a whole family, e.g. ``image/*``. An
    empty allow-list admits everything.
    """
    allowed = [m for m in allowed_mimes if m]
    if not allowed:
        return True
    mime = guess_mime(filename) or "application/octet-stream"
    for pattern in allowed:
        if pattern.endswith("/*"):
            if mime.startswith(pattern[:-1]):
                return True
        elif mime == pattern:
            return True
    return False


def upload_destination(sandbox: PathSandbox, parent_path: str | None, filename: str | None) -> Path:
    # Keep only the final component of the client-supplied name.
    name = Path((filename or "").replace("\\", "/")).name
    return _child_path(sandbox, parent_path, name)


def write_upload(destination: Path, data: bytes) -> None:
    """Write upload bytes, replacing a regular file but never a symlink target."""
    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_NOFOLLOW", 0)
    fd = os.open(destination, flags, 0o644)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)
