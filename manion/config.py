# manion/config.py
from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# ───────── .env 로드: <프로젝트>/.env → manion/.env 순 ─────────
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")
load_dotenv(Path(__file__).resolve().parent / ".env")

DEFAULT_SERVER_ID = "make-server-3a80e39f"
DEFAULT_BUCKET = "make-3a80e39f-manion-uploads"


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if not raw:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    supabase_url: str = ""
    service_role_key: str = ""
    anon_key: str = ""

    server_id: str = DEFAULT_SERVER_ID
    bucket: str = DEFAULT_BUCKET

    admin_emails: List[str] = Field(default_factory=list)
    admin_password: Optional[str] = None

    processing_delay: float = 10.0
    job_max_attempts: int = 3
    job_poll_interval: float = 1.0
    inline_worker: bool = True

    video_base_url: str = "https://example.com"
    signed_url_ttl: int = 3600
    max_upload_bytes: int = 10 * 1024 * 1024
    oauth_redirect: Optional[str] = None

    @property
    def prefix(self) -> str:
        return "/" + self.server_id.strip("/")

    @classmethod
    def from_env(cls) -> "Settings":
        emails = [e.strip().lower() for e in _env("MANION_ADMIN_EMAILS", "manionadmin@manion.com").split(",")]
        return cls(
            supabase_url=_env("SUPABASE_URL").rstrip("/"),
            service_role_key=_env("SUPABASE_SERVICE_ROLE_KEY"),
            anon_key=_env("SUPABASE_ANON_KEY"),
            server_id=_env("MANION_SERVER_ID", DEFAULT_SERVER_ID),
            bucket=_env("MANION_BUCKET", DEFAULT_BUCKET),
            admin_emails=[e for e in emails if e],
            admin_password=_env("MANION_ADMIN_PASSWORD") or None,
            processing_delay=float(_env("MANION_PROCESSING_DELAY", "10")),
            job_max_attempts=int(_env("MANION_JOB_MAX_ATTEMPTS", "3")),
            job_poll_interval=float(_env("MANION_JOB_POLL_INTERVAL", "1.0")),
            inline_worker=_env_bool("MANION_INLINE_WORKER", True),
            video_base_url=_env("MANION_VIDEO_BASE_URL", "https://example.com").rstrip("/"),
            signed_url_ttl=int(_env("MANION_SIGNED_URL_TTL", "3600")),
            max_upload_bytes=int(_env("MANION_MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))),
            oauth_redirect=_env("MANION_OAUTH_REDIRECT") or None,
        )
