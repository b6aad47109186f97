from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path

from .observability import get_logger

logger = get_logger(__name__)

# filevue_backend/ -> project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}={raw!r}: expected an integer")


def _env_str(name: str) -> str | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True)
class Settings:
    # Everything the server exposes lives under here. Default: project-local
    # ./data for easier inspection; override with ROOT_DIRECTORY.
    root_directory: Path = PROJECT_ROOT / "data"
    # Writes are opt-in: only READ_ONLY_MODE=false enables them.
    read_only: bool = True

    max_preview_bytes: int = 1024 * 1024  # 1MB
    image_preview_max_bytes: int = 2 * 1024 * 1024  # 2MB
    thumbnail_max_bytes: int = 256 * 1024  # 256KB
    max_upload_bytes: int = 50 * 1024 * 1024  # 50MB
    allowed_upload_mimes: tuple[str, ...] = ()

    auth_username: str | None = None
    auth_password_hash: str | None = None
    auth_password_plain: str | None = None  # deprecated
    session_secret: str = field(default_factory=lambda: secrets.token_hex(32))
    session_ttl_seconds: int = 3600
    session_cookie_name: str = "explorer_token"
    csrf_cookie_name: str = "explorer_csrf"
    cookie_secure: bool = False
    cors_allowed_origin: str | None = None

    share_sweep_interval_seconds: int = 300
    search_max_results: int = 500
    search_max_timeout_ms: int = 30_000

    client_build_dir: Path = PROJECT_ROOT / "public"
    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"

    host: str = "0.0.0.0"
    port: int = 8080
    https_enabled: bool = False
    ssl_cert_path: Path = Path("/certs/cert.pem")
    ssl_key_path: Path = Path("/certs/key.pem")

    @property
    def stored_password(self) -> str | None:
        return self.auth_password_hash or self.auth_password_plain

    @property
    def auth_required(self) -> bool:
        return bool(self.auth_username and self.stored_password)

    @classmethod
    def from_env(cls) -> "Settings":
        environment = os.environ.get("APP_ENV", "development").strip().lower()
        secret = _env_str("SESSION_SECRET")
        if not secret or secret == "change-me":
            if environment == "production":
                raise RuntimeError("SESSION_SECRET must be set to a secure value in production")
            secret = secrets.token_hex(32)
            logger.warning(
                "generated_session_secret",
                hint="set SESSION_SECRET so sessions survive restarts",
            )

        root_raw = _env_str("ROOT_DIRECTORY")
        mimes = os.environ.get("ALLOWED_UPLOAD_MIMES", "")
        return cls(
            root_directory=Path(root_raw) if root_raw else cls.root_directory,
            read_only=(os.environ.get("READ_ONLY_MODE", "true").strip().lower() != "false"),
            max_preview_bytes=_env_int("MAX_PREVIEW_BYTES", cls.max_preview_bytes),
            image_preview_max_bytes=_env_int("IMAGE_PREVIEW_MAX_BYTES", cls.image_preview_max_bytes),
            thumbnail_max_bytes=_env_int("THUMBNAIL_MAX_BYTES", cls.thumbnail_max_bytes),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", cls.max_upload_bytes),
            allowed_upload_mimes=tuple(m.strip() for m in mimes.split(",") if m.strip()),
            auth_username=_env_str("EXPLORER_USERNAME"),
            auth_password_hash=_env_str("EXPLORER_PASSWORD_HASH"),
            auth_password_plain=_env_str("EXPLORER_PASSWORD"),
            session_secret=secret,
            session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", cls.session_ttl_seconds),
            session_cookie_name=_env_str("SESSION_COOKIE_NAME") or cls.session_cookie_name,
            csrf_cookie_name=_env_str("CSRF_COOKIE_NAME") or cls.csrf_cookie_name,
            cookie_secure=_env_bool("COOKIE_SECURE", False),
            cors_allowed_origin=_env_str("CORS_ALLOWED_ORIGIN"),
            share_sweep_interval_seconds=_env_int(
                "SHARE_SWEEP_INTERVAL_SECONDS", cls.share_sweep_interval_seconds
            ),
            environment=environment,
            log_level=os.environ.get("LOG_LEVEL", cls.log_level),
            log_format=os.environ.get("LOG_FORMAT", cls.log_format),
            host=os.environ.get("HOST", cls.host),
            port=_env_int("PORT", cls.port),
            https_enabled=_env_bool("HTTPS_ENABLED", False),
            ssl_cert_path=Path(os.environ.get("SSL_CERT_PATH", str(cls.ssl_cert_path))),
            ssl_key_path=Path(os.environ.get("SSL_KEY_PATH", str(cls.ssl_key_path))),
        )
