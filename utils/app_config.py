"""Environment-driven settings for the gateway.

Values are read once at startup. A `.env` file next to the working
directory is honoured through `python-dotenv`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not an integer") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name}={raw!r} is not a number") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def _env_dir(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    path = Path(raw).expanduser() if raw and raw.strip() else default
    # A path that exists but is a file is a configuration error.
    if path.exists() and not path.is_dir():
        raise RuntimeError(
            f"{name}={str(path)!r} points to a file, not a directory. "
            f"Please set {name} to a directory path."
        )
    return path


@dataclass(frozen=True)
class AppConfig:
    """Runtime configuration.

    Attributes:
        database_dir: Directory holding the SQLite record database.
        upload_dir: Directory of the local blob store (also served statically).
        max_upload_bytes: Size ceiling for a single upload.
        remote_timeout_seconds: Bound on each remote existence check or delete.
        upload_timeout_seconds: Bound on each remote upload.
        max_concurrent_checks: Existence checks allowed in flight at once.
        cloudinary_folder: Remote folder uploads are placed in.
        cors_origins: Origins allowed by the CORS middleware.
        log_level: Root log level used when the app is started directly.
    """

    database_dir: Path
    upload_dir: Path
    max_upload_bytes: int = 5 * 1024 * 1024
    remote_timeout_seconds: float = 5.0
    upload_timeout_seconds: float = 60.0
    max_concurrent_checks: int = 8
    cloudinary_folder: str = "cloudapp"
    cors_origins: Tuple[str, ...] = field(default=("*",))
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        return self.database_dir / "images.db"

    @classmethod
    def from_env(cls, env_file: Optional[Path | str] = None) -> "AppConfig":
        """Build a config from environment variables (and `.env` if present)."""
        load_dotenv(env_file)

        origins = tuple(
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        )
        return cls(
            database_dir=_env_dir("DATABASE_DIR", BASE_DIR / "database"),
            upload_dir=_env_dir("UPLOAD_DIR", BASE_DIR / "uploads"),
            max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", 5 * 1024 * 1024),
            remote_timeout_seconds=_env_float("REMOTE_TIMEOUT_SECONDS", 5.0),
            upload_timeout_seconds=_env_float("UPLOAD_TIMEOUT_SECONDS", 60.0),
            max_concurrent_checks=_env_int("MAX_CONCURRENT_CHECKS", 8),
            cloudinary_folder=os.getenv("CLOUDINARY_FOLDER", "cloudapp").strip() or "cloudapp",
            cors_origins=origins or ("*",),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )
