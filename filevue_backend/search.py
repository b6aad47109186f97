"""Bounded, time-boxed recursive name search.

Traversal is depth-first. Inside each directory, files are matched before
subdirectories are matched and descended into, so shallow hits show up
early. Two budgets are checked at every entry and every recursion
boundary: the result limit and the wall-clock timeout. Whichever trips
first stops the whole search. Output is sorted after collection
(directories first, then by name), so output order and traversal order
differ.
"""
from __future__ import annotations

import os
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .errors import InvalidInput, NotFound
from .observability import get_logger
from .preview import guess_mime
from .sandbox import PathSandbox

logger = get_logger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 500
DEFAULT_TIMEOUT_MS = 10_000
MAX_TIMEOUT_MS = 30_000


@dataclass(frozen=True)
class Entry:
    name: str
    path: str
    is_directory: bool
    size: int = 0
    modified: int = 0
    mime_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "isDirectory": self.is_directory,
            "size": self.size,
            "modified": self.modified,
            "mimeType": self.mime_type,
        }


def sort_entries(entries: list[Entry]) -> list[Entry]:
    return sorted(entries, key=lambda e: (not e.is_directory, e.name.casefold(), e.name))


@dataclass(frozen=True)
class SearchOutcome:
    matches: tuple[Entry, ...]
    truncated: bool
    timed_out: bool
    elapsed_ms: int


def _clamp(value, default: int, maximum: int) -> int:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return default
    if value < 1:
        return default
    return min(value, maximum)


@dataclass
class _Budget:
    limit: int
    timeout_ms: int
    clock: Callable[[], float]
    started: float
    matches: list[Entry] = field(default_factory=list)
    timed_out: bool = False

    @property
    def elapsed_ms(self) -> int:
        return int((self.clock() - self.started) * 1000)

    def exhausted(self) -> bool:
        if len(self.matches) >= self.limit:
            return True
        if self.timed_out or self.elapsed_ms >= self.timeout_ms:
            self.timed_out = True
            return True
        return False


class SearchEngine:
    def __init__(
        self,
        sandbox: PathSandbox,
        *,
        max_limit: int = MAX_LIMIT,
        max_timeout_ms: int = MAX_TIMEOUT_MS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sandbox = sandbox
        self.max_limit = max_limit
        self.max_timeout_ms = max_timeout_ms
        self._clock = clock

    def clamp_limit(self, limit) -> int:
        return _clamp(limit, min(DEFAULT_LIMIT, self.max_limit), self.max_limit)

    def clamp_timeout(self, timeout_ms) -> int:
        return _clamp(timeout_ms, min(DEFAULT_TIMEOUT_MS, self.max_timeout_ms), self.max_timeout_ms)

    def search(
        self,
        start_path: str | None,
        query: str,
        limit: int | None = None,
        timeout_ms: int | None = None,
    ) -> SearchOutcome:
        """Search entry names under ``start_path`` for ``query``.

        Matching is case-insensitive substring containment; an empty query
        matches every entry. Blocking: run it off the event loop.
        """
        if not isinstance(query, str):
            raise InvalidInput("Query must be a string.", reason="query_not_string")
        budget = _Budget(
            limit=self.clamp_limit(limit),
            timeout_ms=self.clamp_timeout(timeout_ms),
            clock=self._clock,
            started=self._clock(),
        )
        start = self._sandbox.resolve(start_path or ".")
        if not start.exists():
            raise NotFound("Path not found.", reason="search_path_missing")
        if not start.is_dir():
            raise InvalidInput("Search path must be a directory.", reason="search_path_not_directory")

        self._walk(start, query.casefold(), budget)

        outcome = SearchOutcome(
            matches=tuple(sort_entries(budget.matches)),
            truncated=len(budget.matches) >= budget.limit,
            timed_out=budget.timed_out,
            elapsed_ms=budget.elapsed_ms,
        )
        logger.debug(
            "search_finished",
            results=len(outcome.matches),
            truncated=outcome.truncated,
            timed_out=outcome.timed_out,
            elapsed_ms=outcome.elapsed_ms,
        )
        return outcome

    def _walk(self, directory: Path, needle: str, budget: _Budget) -> None:
        if budget.exhausted():
            return
        files: list[os.DirEntry] = []
        subdirs: list[os.DirEntry] = []
        try:
            with os.scandir(directory) as it:
                for entry in it:
                    if budget.exhausted():
                        return
                    try:
                        # Symlinks are never descended into.
                        is_dir = entry.is_dir(follow_symlinks=False)
                    except OSError:
                        continue
                    (subdirs if is_dir else files).append(entry)
        except OSError:
            # Unreadable directory: skip it, keep searching elsewhere.
            return

        for entry in files:
            if budget.exhausted():
                return
            if needle in entry.name.casefold():
                self._collect(entry, budget)

        for entry in subdirs:
            if budget.exhausted():
                return
            if needle in entry.name.casefold():
                self._collect(entry, budget)
            self._walk(Path(entry.path), needle, budget)

    def _collect(self, entry: os.DirEntry, budget: _Budget) -> None:
        # Classified through the link, as directory listings do; a dangling
        # link falls back to its own metadata.
        try:
            st = entry.stat()
        except OSError:
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError:
                return
        is_directory = stat.S_ISDIR(st.st_mode)
        budget.matches.append(
            Entry(
                name=entry.name,
                path=self._sandbox.relative(entry.path),
                is_directory=is_directory,
                size=st.st_size,
                modified=st.st_mtime_ns // 1_000_000,
                mime_type=None if is_directory else guess_mime(entry.name),
            )
        )
