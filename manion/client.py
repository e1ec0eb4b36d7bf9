# manion/client.py
"""
Manion API 클라이언트 + 클라이언트 상태

- AuthSession: 로그인 사용자/토큰을 들고 있는 명시적 세션 객체
  (전역 싱글턴 대신 필요한 곳에 넘겨 쓴다. 파일 저장/로드는 호출 측에서)
- ManionClient: 엔드포인트별 타임아웃을 가진 httpx 래퍼
- ProblemFlow: 업로드 → 처리 중(폴링) → 분석 화면 단계 전이
"""
from __future__ import annotations

import json
import logging
import time
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx

from .config import DEFAULT_SERVER_ID

log = logging.getLogger(__name__)

# 요청 종류별 타임아웃(초)
TIMEOUTS = {"board": 5.0, "auth": 15.0, "upload": 30.0, "poll": 10.0, "default": 15.0}

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png")
MAX_IMAGE_BYTES = 10 * 1024 * 1024


class ClientError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"{status}: {message}")
        self.status = status
        self.message = message


# ───────────── 세션 ─────────────
class AuthSession:
    def __init__(self, user: Optional[Dict[str, Any]] = None, access_token: Optional[str] = None) -> None:
        self.user = user
        self.access_token = access_token
        self._listeners: List[Callable[[Optional[Dict[str, Any]]], None]] = []

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user and self.access_token)

    def set(self, user: Dict[str, Any], access_token: Optional[str] = None) -> None:
        self.user = user
        if access_token:
            self.access_token = access_token
        self._notify()

    def clear(self) -> None:
        self.user = None
        self.access_token = None
        self._notify()

    def on_change(self, callback: Callable[[Optional[Dict[str, Any]]], None]) -> Callable[[], None]:
        """구독 해제 함수를 돌려준다."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self.user)

    # 앱 경계에서만 호출: 시작 시 load, 변경 후 save
    @classmethod
    def load(cls, path: Path) -> "AuthSession":
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return cls(user=data["user"], access_token=data["accessToken"])
        except (ValueError, KeyError, TypeError) as e:
            log.warning("Error loading saved session: %s", e)
            path.unlink(missing_ok=True)
            return cls()

    def save(self, path: Path) -> None:
        path = Path(path)
        if not self.is_authenticated:
            path.unlink(missing_ok=True)
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"user": self.user, "accessToken": self.access_token}, ensure_ascii=False), encoding="utf-8")


def validate_image(filename: str, data: bytes, content_type: str) -> None:
    if content_type.lower() not in ALLOWED_IMAGE_TYPES:
        raise ValueError("JPG, JPEG, PNG 파일만 업로드할 수 있습니다.")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValueError("파일 크기는 10MB 이하여야 합니다.")
    if not data:
        raise ValueError(f"빈 파일입니다: {filename}")


# ───────────── API 클라이언트 ─────────────
class ManionClient:
    def __init__(
        self,
        http: httpx.Client,
        session: Optional[AuthSession] = None,
        prefix: str = "/" + DEFAULT_SERVER_ID,
        anon_key: str = "",
    ) -> None:
        self.http = http
        self.session = session or AuthSession()
        self.prefix = prefix.rstrip("/")
        self.anon_key = anon_key
        self._owns_http = False

    @classmethod
    def connect(cls, base_url: str, **kwargs) -> "ManionClient":
        client = cls(httpx.Client(base_url=base_url), **kwargs)
        client._owns_http = True
        return client

    def close(self) -> None:
        """connect()로 만든 httpx 클라이언트만 닫는다. 주입받은 것은 호출한 쪽 소유"""
        if self._owns_http:
            self.http.close()

    def __enter__(self) -> "ManionClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        token = self.session.access_token or self.anon_key
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _request(self, method: str, path: str, kind: str = "default", **kwargs) -> Any:
        r = self.http.request(
            method, f"{self.prefix}{path}", headers=self._headers(), timeout=TIMEOUTS[kind], **kwargs
        )
        if r.status_code >= 400:
            try:
                message = r.json().get("error") or r.text
            except ValueError:
                message = r.text
            raise ClientError(r.status_code, message)
        return r.json()

    # ───────── 인증 ─────────
    def sign_up(self, email: str, password: str, name: str) -> Dict[str, Any]:
        return self._request("POST", "/signup", "auth", json={"email": email, "password": password, "name": name})

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/signin", "auth", json={"email": email, "password": password})
        raw = data.get("user") or {}
        user = {
            "id": raw.get("id"),
            "email": raw.get("email"),
            "name": (raw.get("user_metadata") or {}).get("name"),
            "isAdmin": (raw.get("app_metadata") or {}).get("role") == "admin",
        }
        self.session.set(user, (data.get("session") or {}).get("access_token"))
        return data

    def sign_out(self) -> None:
        self.session.clear()

    def oauth_url(self, provider: str) -> str:
        return self._request("POST", f"/auth/{provider}", "auth")["url"]

    # ───────── 문제 ─────────
    def upload(self, data: bytes, filename: str, content_type: str, title: Optional[str] = None) -> str:
        validate_image(filename, data, content_type)
        form = {"title": title} if title else None
        body = self._request(
            "POST", "/upload", "upload", files={"image": (filename, data, content_type)}, data=form
        )
        return body["problemId"]

    def get_problem(self, problem_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/problem/{problem_id}", "poll")

    # ───────── 내 기록 ─────────
    def history(self) -> Dict[str, Any]:
        return self._request("GET", "/user/history")

    def remove_history_problem(self, problem_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/user/history/problem/{problem_id}")

    def rename_problem(self, problem_id: str, title: str) -> Dict[str, Any]:
        return self._request("PUT", f"/user/history/problem/{problem_id}/title", json={"title": title})

    # ───────── 커뮤니티 / 평가 ─────────
    def list_posts(self, board_type: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/community/posts/{board_type}", "board")

    def create_post(self, content: str, author: str, board_type: str) -> Dict[str, Any]:
        body = {"content": content, "author": author, "boardType": board_type}
        return self._request("POST", "/community/posts", json=body)["post"]

    def vote(self, post_id: str, action: str = "like") -> Dict[str, Any]:
        return self._request("POST", f"/community/posts/{post_id}/like", json={"action": action})["post"]

    def reply(self, post_id: str, content: str, author: str) -> Dict[str, Any]:
        return self._request("POST", f"/community/posts/{post_id}/reply", json={"content": content, "author": author})["reply"]

    def evaluate(self, rating: int, video_url: str, feedback: str = "") -> Dict[str, Any]:
        body = {"rating": rating, "videoUrl": video_url, "feedback": feedback}
        return self._request("POST", "/evaluations", json=body)["evaluation"]


# ───────────── 업로드 → 처리 → 분석 ─────────────
class Stage(str, Enum):
    UPLOAD = "upload"
    PROCESSING = "processing"
    ANALYSIS = "analysis"
    FAILED = "failed"


class ProblemFlow:
    def __init__(self, client: ManionClient) -> None:
        self.client = client
        self.stage = Stage.UPLOAD
        self.problem_id: Optional[str] = None
        self.problem: Optional[Dict[str, Any]] = None

    def start(self, data: bytes, filename: str, content_type: str, title: Optional[str] = None) -> str:
        if self.stage is not Stage.UPLOAD:
            raise RuntimeError(f"flow already started (stage={self.stage.value})")
        self.problem_id = self.client.upload(data, filename, content_type, title)
        self.stage = Stage.PROCESSING
        return self.problem_id

    def poll(self) -> Stage:
        if self.stage is not Stage.PROCESSING:
            return self.stage
        self.problem = self.client.get_problem(self.problem_id)
        status = self.problem.get("status")
        if status == "completed":
            self.stage = Stage.ANALYSIS
        elif status == "failed":
            self.stage = Stage.FAILED
        return self.stage

    def wait(
        self,
        interval: float = 2.0,
        timeout: float = 120.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> Stage:
        deadline = clock() + timeout
        while self.poll() is Stage.PROCESSING:
            if clock() >= deadline:
                raise TimeoutError(f"problem {self.problem_id} still processing after {timeout}s")
            sleep(interval)
        return self.stage

    def reset(self) -> None:
        self.stage = Stage.UPLOAD
        self.problem_id = None
        self.problem = None
