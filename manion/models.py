# manion/models.py
from __future__ import annotations
from sqlalchemy import Column, String, DateTime, JSON, func

from .db import Base


# ───────────── key-value 테이블 ─────────────
class DBKeyValue(Base):
    """kv_store 테이블: 평평한 key 네임스페이스 + JSON 문서"""
    __tablename__ = "kv_store"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
