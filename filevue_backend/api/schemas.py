"""Request bodies for the API routers."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class CreateFileRequest(BaseModel):
    parentPath: str = "."
    name: Optional[str] = None
    content: str = ""
    encoding: Literal["utf-8", "base64"] = "utf-8"


class CreateFolderRequest(BaseModel):
    parentPath: str = "."
    name: Optional[str] = None


class RenameRequest(BaseModel):
    path: Optional[str] = None
    newName: Optional[str] = None


class CreateShareRequest(BaseModel):
    path: Optional[str] = None
    expiresInHours: Optional[float] = None
