"""Confinement of client-supplied paths to a single directory tree.

Every filesystem operation goes through :meth:`PathSandbox.resolve`. The
check runs twice: once on the lexically normalized path (catches plain
``..`` traversal) and once on the symlink-resolved real path (catches a
symlink planted after an earlier successful resolution). Nothing is cached
between calls.
"""
from __future__ import annotations

import errno
import os
from pathlib import Path, PurePosixPath

from .errors import InvalidInput, NotFound, OutsideRoot


def is_safe_basename(name: str) -> bool:
    """Allow only simple entry names (no directories, no dot entries)."""
    if not isinstance(name, str) or not name or name in (".", ".."):
        return False
    if "\x00" in name:
        return False
    if "/" in name or "\\" in name:
        return False
    if name != Path(name).name:
        return False
    return True


def _is_within(base: Path, candidate: Path) -> bool:
    return candidate == base or base in candidate.parents


def _real_path(path: Path) -> Path:
    try:
        return path.resolve(strict=True)
    except RuntimeError:
        # Symlink loop on interpreters older than 3.13.
        raise InvalidInput("Path contains a symlink loop.", reason="symlink_loop")
    except OSError as exc:
        if exc.errno == errno.ELOOP:
            raise InvalidInput("Path contains a symlink loop.", reason="symlink_loop")
        raise


class PathSandbox:
    """Resolves relative paths to absolute paths inside ``root``.

    ``error`` is the failure raised on escape; share-scoped sandboxes pass
    :class:`~filevue_backend.errors.OutsideShare` so the client sees which
    boundary was hit.
    """

    def __init__(self, root: Path | str, *, error: type[OutsideRoot] = OutsideRoot) -> None:
        self._error = error
        self.root = Path(root).resolve()

    def __repr__(self) -> str:
        return f"PathSandbox({str(self.root)!r})"

    def _normalize(self, relative_path: str | os.PathLike | None) -> Path:
        if relative_path is None:
            relative_path = "."
        if isinstance(relative_path, os.PathLike):
            relative_path = os.fspath(relative_path)
        if not isinstance(relative_path, str):
            raise InvalidInput("Path must be a string.", reason="path_not_string")
        if "\x00" in relative_path:
            raise InvalidInput("Path contains a NUL byte.", reason="path_nul_byte")
        relative_path = relative_path or "."
        # os.path.join drops the root for absolute inputs; the containment
        # check below then rejects them unless they already point inside.
        joined = os.path.normpath(os.path.join(self.root, relative_path))
        normalized = Path(joined)
        if not _is_within(self.root, normalized):
            raise self._error(reason="lexical_escape")
        return normalized

    def resolve(self, relative_path: str | os.PathLike | None = ".") -> Path:
        """Return the canonical absolute path for ``relative_path``.

        Targets that do not exist yet (new files, new folders) resolve
        through their parent directory's real path. A missing parent raises
        :class:`NotFound`.
        """
        normalized = self._normalize(relative_path)
        try:
            real = _real_path(normalized)
        except FileNotFoundError:
            if normalized == self.root:
                raise NotFound("Root directory does not exist.", reason="root_missing")
            try:
                parent_real = _real_path(normalized.parent)
            except (FileNotFoundError, NotADirectoryError):
                raise NotFound("Path not found.", reason="parent_missing")
            if not _is_within(self.root, parent_real):
                raise self._error(reason="symlink_escape")
            candidate = parent_real / normalized.name
            # A dangling symlink must not become a way to create files outside.
            if candidate.is_symlink() and not _is_within(self.root, Path(os.path.realpath(candidate))):
                raise self._error(reason="dangling_symlink_escape")
            return candidate
        except NotADirectoryError:
            raise NotFound("Path not found.", reason="not_a_directory")
        if not _is_within(self.root, real):
            raise self._error(reason="symlink_escape")
        return real

    def resolve_entry(self, relative_path: str | os.PathLike | None) -> Path:
        """Resolve the parent, but not the final component.

        Used for delete and rename, which must act on a symlink itself
        rather than on whatever it points to.
        """
        normalized = self._normalize(relative_path)
        if normalized == self.root:
            return self.root
        parent = self.resolve(str(normalized.parent))
        if not parent.is_dir():
            raise NotFound("Path not found.", reason="parent_missing")
        candidate = parent / normalized.name
        if not os.path.lexists(candidate):
            raise NotFound("Path not found.", reason="entry_missing")
        return candidate

    def contains(self, absolute_path: Path | str) -> bool:
        """True when ``absolute_path`` still canonicalizes inside the root."""
        try:
            real = Path(absolute_path).resolve()
        except (OSError, RuntimeError):
            return False
        return _is_within(self.root, real)

    def relative(self, absolute_path: Path | str) -> str:
        """Root-relative POSIX form of an absolute path, ``.`` for the root."""
        path = Path(absolute_path)
        if not _is_within(self.root, path):
            raise self._error(reason="relative_escape")
        rel = path.relative_to(self.root)
        return str(PurePosixPath(*rel.parts)) if rel.parts else "."

    def is_root(self, absolute_path: Path | str) -> bool:
        return Path(absolute_path) == self.root
