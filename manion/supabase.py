# manion/supabase.py
from __future__ import annotations

from typing import Dict, Optional

import httpx

from .config import Settings


def service_headers(settings: Settings) -> Dict[str, str]:
    key = settings.service_role_key
    return {"apikey": key, "Authorization": f"Bearer {key}"}


def make_http_client(settings: Settings, path: str, timeout: float = 15.0) -> httpx.Client:
    return httpx.Client(base_url=f"{settings.supabase_url}{path}", timeout=timeout)


def error_message(resp: httpx.Response, fallback: str = "upstream error") -> str:
    """GoTrue/Storage 에러 바디는 msg, message, error_description, error 중 하나"""
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or fallback)[:200]
    if isinstance(body, dict):
        for k in ("msg", "message", "error_description", "error"):
            v: Optional[str] = body.get(k)
            if v:
                return str(v)
    return fallback
