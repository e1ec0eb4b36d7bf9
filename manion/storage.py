# manion/storage.py
from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

import httpx

from .config import Settings
from .errors import UpstreamError
from .supabase import error_message, make_http_client, service_headers

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

BUCKET_FILE_SIZE_LIMIT = 50 * 1024 * 1024   # 50MB (버킷 한도, 업로드 검증은 라우트에서)
SIGNED_URL_EXPIRES = 60 * 60                 # 1 hour


class SupabaseStorage:
    """비공개 버킷 업로드 + 서명 URL 발급 (Supabase Storage REST)"""

    def __init__(self, settings: Settings, http: Optional[httpx.Client] = None) -> None:
        self.settings = settings
        self.bucket = settings.bucket
        self._http = http or make_http_client(settings, "/storage/v1", timeout=30.0)

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = {**service_headers(self.settings), **kwargs.pop("headers", {})}
        try:
            r = self._http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"storage upstream unreachable: {e}") from e
        if r.status_code >= 400:
            raise UpstreamError(error_message(r), status=r.status_code)
        return r

    def ensure_bucket(self) -> bool:
        buckets = self._request("GET", "/bucket").json() or []
        if any(b.get("name") == self.bucket for b in buckets):
            return False
        self._request(
            "POST",
            "/bucket",
            json={"id": self.bucket, "name": self.bucket, "public": False, "file_size_limit": BUCKET_FILE_SIZE_LIMIT},
        )
        log.info("Created bucket: %s", self.bucket)
        return True

    def upload(self, name: str, data: bytes, content_type: str) -> None:
        self._request(
            "POST",
            f"/object/{self.bucket}/{quote(name)}",
            content=data,
            headers={"Content-Type": content_type or "application/octet-stream", "x-upsert": "false"},
        )

    def signed_url(self, name: str, expires_in: int = SIGNED_URL_EXPIRES) -> Optional[str]:
        """서명 URL 발급 실패는 로그만 남기고 None (상태 폴링은 계속 가능해야 함)"""
        try:
            body = self._request(
                "POST", f"/object/sign/{self.bucket}/{quote(name)}", json={"expiresIn": expires_in}
            ).json()
        except UpstreamError as e:
            log.warning("signed url failed for %s: %s", name, e.message)
            return None
        signed = body.get("signedURL") or body.get("signedUrl")
        if not signed:
            return None
        return f"{self.settings.supabase_url}/storage/v1{signed}"

    def remove(self, names: List[str]) -> None:
        if names:
            self._request("DELETE", f"/object/{self.bucket}", json={"prefixes": names})
