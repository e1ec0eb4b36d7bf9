# manion/app.py
"""FastAPI application factory."""
from __future__ import annotations

import logging
import time
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings
from .db import decide_database_url, make_engine, make_session_factory
from .errors import UpstreamError, install_error_handlers
from .identity import SupabaseAuth
from .jobs import JobRunner, MockVideoGenerator
from .kv import KVStore
from .routers import admin, auth, community, evaluations, history, problems
from .storage import SupabaseStorage

log = logging.getLogger("manion")

VERSION = "1.0.0"


def create_app(
    settings: Optional[Settings] = None,
    kv: Optional[KVStore] = None,
    identity: Optional[SupabaseAuth] = None,
    storage: Optional[SupabaseStorage] = None,
    generator: Any = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if kv is None:
        kv = KVStore(make_session_factory(make_engine(decide_database_url())))

    app = FastAPI(title="Manion API", version=VERSION)
    app.state.settings = settings
    app.state.kv = kv
    app.state.identity = identity or SupabaseAuth(settings)
    app.state.storage = storage or SupabaseStorage(settings)
    app.state.jobs = JobRunner(
        kv,
        generator or MockVideoGenerator(settings.video_base_url),
        max_attempts=settings.job_max_attempts,
    )

    # ───────────── CORS: 모든 오리진 허용 ─────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Content-Length"],
        max_age=600,
    )

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        log.info(
            "%s %s -> %s (%.1fms)",
            request.method, request.url.path, response.status_code, (time.perf_counter() - started) * 1000,
        )
        return response

    install_error_handlers(app)

    # ───────────── 시작/종료 훅 ─────────────
    @app.on_event("startup")
    def _startup():
        try:
            app.state.storage.ensure_bucket()
        except UpstreamError as e:
            log.warning("bucket setup skipped: %s", e.message)

        if settings.admin_password and settings.admin_emails:
            try:
                app.state.identity.ensure_admin(settings.admin_emails[0], settings.admin_password)
            except UpstreamError as e:
                log.warning("admin account setup failed: %s", e.message)

        if settings.inline_worker:
            app.state.jobs.start(settings.job_poll_interval)

    @app.on_event("shutdown")
    def _shutdown():
        app.state.jobs.stop()

    # ───────────── 라우트 (배포 네임스페이스 접두사) ─────────────
    @app.get(f"{settings.prefix}/health")
    def health():
        return {"status": "ok"}

    for module in (problems, auth, history, community, evaluations, admin):
        app.include_router(module.router, prefix=settings.prefix)

    return app
