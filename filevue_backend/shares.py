"""In-memory, self-expiring link shares.

A share exposes one file or directory to anyone holding its id *and* its
short access code. Verifying the code mints a bearer token that authorizes
later reads. A directory share is a second, narrower sandbox nested inside
the global one: sub-paths resolve against the share's own root.

Records live in one dict guarded by one lock. Every lookup, insert, token
grant, delete and sweep happens inside a short critical section with no
filesystem I/O, so an expired or deleted record can never be written back.
Nothing survives a restart.
"""
from __future__ import annotations

import dataclasses
import secrets
import stat
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .credentials import safe_compare
from .errors import Forbidden, InvalidInput, NotFound, OutsideShare, Unauthenticated
from .observability import get_logger
from .ratelimit import SHARE_VERIFY_LIMIT, SlidingWindowCounter
from .sandbox import PathSandbox

logger = get_logger(__name__)

# No 0/O or 1/I: the code is read aloud and typed by hand.
ACCESS_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ACCESS_CODE_LENGTH = 6
SHARE_ID_BYTES = 8
ACCESS_TOKEN_BYTES = 16

DEFAULT_SHARE_HOURS = 24
MIN_SHARE_HOURS = 1
MAX_SHARE_HOURS = 168  # 7 days


def generate_share_id() -> str:
    return secrets.token_hex(SHARE_ID_BYTES)


def generate_access_code() -> str:
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))


def clamp_duration_hours(value) -> float:
    try:
        hours = float(value)
    except (TypeError, ValueError):
        return float(DEFAULT_SHARE_HOURS)
    if hours != hours or hours == 0:  # NaN or zero
        return float(DEFAULT_SHARE_HOURS)
    return min(max(hours, MIN_SHARE_HOURS), MAX_SHARE_HOURS)


@dataclass
class ShareRecord:
    id: str
    access_code: str
    target_path: str
    resolved_path: Path
    is_directory: bool
    name: str
    created_at: float
    expires_at: float
    access_tokens: set[str] = field(default_factory=set)
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now

    def snapshot(self) -> "ShareRecord":
        return dataclasses.replace(self, access_tokens=set(self.access_tokens))

    def to_summary(self) -> dict:
        """Owner-facing listing entry; never includes tokens."""
        return {
            "id": self.id,
            "name": self.name,
            "path": self.target_path,
            "isDirectory": self.is_directory,
            "createdAt": int(self.created_at * 1000),
            "expiresAt": int(self.expires_at * 1000),
            "accessCount": self.access_count,
        }


@dataclass(frozen=True)
class ShareAccess:
    """A verified read against a share: the record and the resolved target."""

    record: ShareRecord
    path: Path
    sandbox: PathSandbox | None = None

    def relative(self, path: Path | None = None) -> str:
        path = path or self.path
        if self.sandbox is None:
            return path.name
        return self.sandbox.relative(path)


class ShareRegistry:
    def __init__(
        self,
        sandbox: PathSandbox,
        *,
        clock: Callable[[], float] = time.time,
        verify_limiter: SlidingWindowCounter | None = None,
    ) -> None:
        self._sandbox = sandbox
        self._clock = clock
        self._records: dict[str, ShareRecord] = {}
        self._lock = threading.Lock()
        self._verify_limiter = verify_limiter or SlidingWindowCounter(SHARE_VERIFY_LIMIT)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _live(self, share_id: str, now: float) -> ShareRecord:
        """Lookup under the lock; expired records are evicted on sight."""
        record = self._records.get(share_id)
        if record is None:
            raise NotFound("Share not found or expired.", reason="share_unknown")
        if record.is_expired(now):
            del self._records[share_id]
            raise NotFound("Share not found or expired.", reason="share_expired")
        return record

    def create(self, path: str, duration_hours=None) -> ShareRecord:
        if not path:
            raise InvalidInput("Path is required.", reason="share_path_missing")
        resolved = self._sandbox.resolve(path)
        try:
            st = resolved.stat()
        except FileNotFoundError:
            raise NotFound("Path not found.", reason="share_target_missing")
        hours = clamp_duration_hours(duration_hours)
        now = self._clock()
        record = ShareRecord(
            id="",
            access_code=generate_access_code(),
            target_path=self._sandbox.relative(resolved),
            resolved_path=resolved,
            is_directory=stat.S_ISDIR(st.st_mode),
            name=resolved.name,
            created_at=now,
            expires_at=now + hours * 3600,
        )
        with self._lock:
            share_id = generate_share_id()
            while share_id in self._records:
                share_id = generate_share_id()
            record.id = share_id
            self._records[share_id] = record
            snapshot = record.snapshot()
        logger.info("share_created", share_id=share_id, is_directory=record.is_directory, hours=hours)
        return snapshot

    def verify(self, share_id: str, code: str | None) -> tuple[str, ShareRecord]:
        """Check an access code and mint a bearer token for the share."""
        if not code or not isinstance(code, str):
            raise InvalidInput("Access code is required.", reason="access_code_missing")
        with self._lock:
            record = self._live(share_id, self._clock())
            expected = record.access_code
            resolved = record.resolved_path

        self._verify_limiter.peek(share_id)
        if not safe_compare(code.strip().upper(), expected):
            self._verify_limiter.hit(share_id)
            raise Forbidden("Invalid access code.", reason="access_code_mismatch")

        if not resolved.exists() or not self._sandbox.contains(resolved):
            raise NotFound("Shared content no longer exists.", reason="share_target_missing")

        token = secrets.token_hex(ACCESS_TOKEN_BYTES)
        with self._lock:
            # Re-read: the record may have expired or been deleted meanwhile.
            record = self._live(share_id, self._clock())
            record.access_tokens.add(token)
            record.access_count += 1
            snapshot = record.snapshot()
        self._verify_limiter.reset(share_id)
        return token, snapshot

    def access(self, share_id: str, token: str | None, sub_path: str | None = ".") -> ShareAccess:
        """Authorize a read with a bearer token and resolve its target.

        For directory shares ``sub_path`` is confined to the share root;
        file shares ignore it.
        """
        if not token:
            raise Unauthenticated("Share access token required.", reason="share_token_missing")
        with self._lock:
            record = self._live(share_id, self._clock())
            if token not in record.access_tokens:
                raise Forbidden("Invalid share access token.", reason="share_token_unknown")
            snapshot = record.snapshot()

        if not self._sandbox.contains(snapshot.resolved_path):
            raise NotFound("Shared content no longer exists.", reason="share_target_escaped")

        if not snapshot.is_directory:
            target = snapshot.resolved_path
            if target.resolve() != target or not target.is_file():
                raise NotFound("Shared content no longer exists.", reason="share_target_missing")
            return ShareAccess(record=snapshot, path=target)

        share_sandbox = PathSandbox(snapshot.resolved_path, error=OutsideShare)
        if share_sandbox.root != snapshot.resolved_path or not share_sandbox.root.is_dir():
            raise NotFound("Shared content no longer exists.", reason="share_target_missing")
        target = share_sandbox.resolve(sub_path or ".")
        if not target.exists():
            raise NotFound("Path not found.", reason="share_subpath_missing")
        return ShareAccess(record=snapshot, path=target, sandbox=share_sandbox)

    def delete(self, share_id: str) -> None:
        with self._lock:
            if self._records.pop(share_id, None) is None:
                raise NotFound("Share not found.", reason="share_unknown")
        self._verify_limiter.reset(share_id)
        logger.info("share_deleted", share_id=share_id)

    def list(self) -> list[ShareRecord]:
        self.sweep()
        with self._lock:
            records = [r.snapshot() for r in self._records.values()]
        return sorted(records, key=lambda r: r.created_at)

    def sweep(self) -> int:
        """Drop every expired record. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, r in self._records.items() if r.is_expired(now)]
            for sid in expired:
                del self._records[sid]
        for sid in expired:
            self._verify_limiter.reset(sid)
        if expired:
            logger.info("shares_swept", removed=len(expired))
        return len(expired)
