# manion/db.py
from __future__ import annotations
import os
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool, StaticPool

from .config import BASE_DIR

Base = declarative_base()


def _sqlite_url() -> str:
    """로컬 개발 폴백: <프로젝트>/data/manion.db"""
    db_path = os.getenv("MANION_DB_PATH") or str(BASE_DIR / "data" / "manion.db")
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    # 절대경로 sqlite는 //// 규칙
    return "sqlite:////" + os.path.abspath(db_path)


def decide_database_url() -> str:
    """
    우선순위:
      1) DATABASE_URL_POOLED (Supabase pgbouncer: 6543 포트)
      2) DATABASE_URL (5432)
      3) sqlite 폴백
    postgres 스킴이면 sslmode=require 자동 부여
    """
    url = (os.getenv("DATABASE_URL_POOLED") or os.getenv("DATABASE_URL") or "").strip()
    if url:
        if url.startswith("postgresql") and "sslmode=" not in url:
            url += ("&" if "?" in url else "?") + "sslmode=require"
        return url
    return _sqlite_url()


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False, "timeout": 30}, "pool_pre_ping": True}
        # 인메모리 sqlite는 커넥션 하나를 공유해야 데이터가 유지됨
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
            return create_engine(url, **kwargs)
        engine = create_engine(url, **kwargs)
        _begin_immediate(engine)
        return engine
    # 서버리스에서 안전: 요청마다 커넥션 생성/종료
    return create_engine(url, poolclass=NullPool, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    # 테이블 자동 생성은 SQLite일 때만 (Supabase 쪽은 기존 테이블 사용)
    if engine.url.get_backend_name() == "sqlite":
        from . import models  # noqa: F401  (테이블 등록)
        Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _begin_immediate(engine: Engine) -> None:
    """
    파일 sqlite: 트랜잭션마다 BEGIN IMMEDIATE로 쓰기 락을 먼저 잡는다.
    (sqlite는 FOR UPDATE를 무시하고, pysqlite는 SELECT 전에 트랜잭션을 열지 않음.
     API와 python -m manion.worker가 같은 파일을 쓸 때 갱신 유실 방지)
    """

    @event.listens_for(engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
