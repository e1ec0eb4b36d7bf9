# manion/identity.py
"""
Supabase Auth(GoTrue) REST 클라이언트

핸들러가 쓰는 것은 verify_token 하나뿐이고, 나머지는 회원가입/로그인/OAuth
엔드포인트와 시작 시 관리자 계정 보장을 위한 것.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from .config import Settings
from .errors import UpstreamError
from .schemas import Role, User
from .supabase import error_message, make_http_client, service_headers

log = logging.getLogger(__name__)

OAUTH_PROVIDERS = ("google", "kakao")


class SupabaseAuth:
    def __init__(self, settings: Settings, http: Optional[httpx.Client] = None) -> None:
        self.settings = settings
        self._http = http or make_http_client(settings, "/auth/v1")

    # ───────── 역할 판정 ─────────
    def role_of(self, raw: Dict[str, Any]) -> Role:
        app_meta = raw.get("app_metadata") or {}
        if app_meta.get("role") == Role.ADMIN.value:
            return Role.ADMIN
        email = (raw.get("email") or "").lower()
        if email and email in self.settings.admin_emails:
            return Role.ADMIN
        return Role.REGULAR

    def to_user(self, raw: Dict[str, Any]) -> User:
        meta = raw.get("user_metadata") or {}
        return User(id=raw["id"], email=raw.get("email"), name=meta.get("name"), role=self.role_of(raw))

    # ───────── 토큰 → 사용자 ─────────
    def verify_token(self, token: Optional[str]) -> Optional[User]:
        if not token or token == self.settings.anon_key:
            return None  # 익명 사용자
        try:
            r = self._http.get(
                "/user",
                headers={"apikey": self.settings.service_role_key, "Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            log.warning("Auth exception: %s", e)
            return None
        if r.status_code != 200:
            log.info("Auth error: %s", error_message(r))
            return None
        return self.to_user(r.json())

    # ───────── 회원가입 / 로그인 ─────────
    def sign_up(self, email: str, password: str, name: str) -> Dict[str, Any]:
        # 메일 서버가 없으므로 이메일 확인을 바로 처리
        r = self._post(
            "/admin/users",
            json={"email": email, "password": password, "user_metadata": {"name": name}, "email_confirm": True},
            headers=service_headers(self.settings),
        )
        return r.json()

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        r = self._post(
            "/token?grant_type=password",
            json={"email": email, "password": password},
            headers={"apikey": self.settings.anon_key or self.settings.service_role_key},
        )
        session = r.json()
        return {"user": session.get("user"), "session": session}

    def oauth_url(self, provider: str) -> str:
        if provider not in OAUTH_PROVIDERS:
            raise UpstreamError(f"Unsupported provider: {provider}", status=400)
        params = {"provider": provider}
        if self.settings.oauth_redirect:
            params["redirect_to"] = self.settings.oauth_redirect
        return f"{self.settings.supabase_url}/auth/v1/authorize?{urlencode(params)}"

    # ───────── 관리자 계정 보장 (시작 시) ─────────
    def ensure_admin(self, email: str, password: str) -> bool:
        """없으면 role=admin으로 생성. 이미 있으면 건드리지 않음."""
        try:
            self._post(
                "/admin/users",
                json={
                    "email": email,
                    "password": password,
                    "email_confirm": True,
                    "user_metadata": {"name": "Manion Admin"},
                    "app_metadata": {"role": Role.ADMIN.value},
                },
                headers=service_headers(self.settings),
            )
        except UpstreamError as e:
            if "already" in e.message.lower():
                log.info("Admin account exists: %s", email)
                return False
            raise
        log.info("Admin account created: %s", email)
        return True

    def _post(self, path: str, **kwargs) -> httpx.Response:
        try:
            r = self._http.post(path, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"auth upstream unreachable: {e}") from e
        if r.status_code >= 400:
            raise UpstreamError(error_message(r), status=r.status_code)
        return r
