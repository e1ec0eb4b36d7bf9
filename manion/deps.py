# manion/deps.py
"""Dependency helpers for retrieving shared services."""
from __future__ import annotations

from fastapi import Request

from .config import Settings
from .identity import SupabaseAuth
from .jobs import JobRunner
from .kv import KVStore
from .storage import SupabaseStorage


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(f"{name} has not been initialised on the app")
    return value


def get_settings(request: Request) -> Settings:
    return _state(request, "settings")


def get_kv(request: Request) -> KVStore:
    return _state(request, "kv")


def get_identity(request: Request) -> SupabaseAuth:
    return _state(request, "identity")


def get_storage(request: Request) -> SupabaseStorage:
    return _state(request, "storage")


def get_jobs(request: Request) -> JobRunner:
    return _state(request, "jobs")
