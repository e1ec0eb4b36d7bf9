# manion/schemas.py
from __future__ import annotations

import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Collections (key prefix):
# - problem_<ts>_<rand>
# - post_<boardType>_<ts>_<rand>   (reply는 post.replies에 내장)
# - evaluation_<ts>_<rand>
# - user_history_<userId>
# - job_<problemId>

ProblemStatus = Literal["processing", "completed", "failed"]
BoardType = Literal["general", "anonymous", "notice"]
BOARD_TYPES = ("general", "anonymous", "notice")

MAX_TEXT = 200
_BASE36 = string.digits + string.ascii_lowercase


# ───────────── 공통 헬퍼 ─────────────
def now_iso(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_id(prefix: str) -> str:
    """<prefix>_<epoch ms>_<base36 9자리>"""
    rand = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{rand}"


def user_history_key(user_id: str) -> str:
    return f"user_history_{user_id}"


def _non_empty(v: Optional[str], label: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError(f"{label} is required")
    return v


def _iso_timestamp(v: str) -> str:
    """ISO 8601만 허용하고 저장 형식(ms, Z)으로 정규화"""
    dt = parse_iso(v)
    if dt is None:
        raise ValueError("timestamp must be an ISO 8601 datetime")
    return now_iso(dt)


# ───────────── 사용자 ─────────────
class Role(str, Enum):
    REGULAR = "regular"
    ADMIN = "admin"


class User(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Role = Role.REGULAR

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


# ───────────── 문제 (업로드 → 영상 생성) ─────────────
class Problem(BaseModel):
    id: str
    title: str
    fileName: str
    status: ProblemStatus = "processing"
    uploadTime: str
    videoUrl: Optional[str] = None
    userId: Optional[str] = None
    userEmail: Optional[str] = None
    userName: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _video_iff_completed(self) -> "Problem":
        if self.status == "completed" and not self.videoUrl:
            raise ValueError("completed problem requires videoUrl")
        if self.status != "completed" and self.videoUrl:
            raise ValueError("videoUrl is only set on completed problems")
        return self

    def complete(self, video_url: str) -> "Problem":
        if self.status != "processing":
            raise ValueError(f"cannot complete a {self.status} problem")
        return Problem(**{**self.model_dump(), "status": "completed", "videoUrl": video_url, "error": None})

    def fail(self, reason: str) -> "Problem":
        if self.status != "processing":
            raise ValueError(f"cannot fail a {self.status} problem")
        return Problem(**{**self.model_dump(), "status": "failed", "videoUrl": None, "error": reason})


# ───────────── 커뮤니티 ─────────────
class Reply(BaseModel):
    id: str
    content: str = Field(..., max_length=MAX_TEXT)
    author: str
    userId: Optional[str] = None
    createdAt: str
    isAdmin: bool = False


class Post(BaseModel):
    id: str
    content: str = Field(..., max_length=MAX_TEXT)
    author: str
    boardType: BoardType
    userId: Optional[str] = None
    createdAt: str
    likes: int = Field(default=0, ge=0)
    dislikes: int = Field(default=0, ge=0)
    replies: List[Reply] = Field(default_factory=list)
    isNotice: bool = False


# ───────────── 평가 ─────────────
class Evaluation(BaseModel):
    id: str
    rating: int = Field(..., ge=1, le=5, strict=True)
    feedback: str = Field(default="", max_length=MAX_TEXT)
    videoUrl: str = ""
    userId: Optional[str] = None
    userEmail: Optional[str] = None
    createdAt: str

    @field_validator("createdAt")
    @classmethod
    def iso_timestamp(cls, v: str) -> str:
        return _iso_timestamp(v)


# ───────────── 사용자 기록 (비정규화 로그) ─────────────
class HistoryProblem(BaseModel):
    problemId: str
    title: str
    status: ProblemStatus = "processing"
    createdAt: str
    videoUrl: Optional[str] = None


class HistoryComment(BaseModel):
    type: Literal["post", "reply"]
    postId: str
    replyId: Optional[str] = None
    content: str
    boardType: Optional[BoardType] = None
    createdAt: str


class HistoryEvaluation(BaseModel):
    evaluationId: str
    rating: int
    feedback: str = ""
    videoUrl: str = ""
    createdAt: str


class UserHistory(BaseModel):
    problems: List[HistoryProblem] = Field(default_factory=list)
    comments: List[HistoryComment] = Field(default_factory=list)
    evaluations: List[HistoryEvaluation] = Field(default_factory=list)

    def dump(self) -> dict:
        return self.model_dump(exclude_none=True)


# ───────────── 요청 바디 ─────────────
class SignUpReq(BaseModel):
    email: str
    password: str
    name: str

    @field_validator("email", "password", "name")
    @classmethod
    def non_empty(cls, v: str, info):
        return _non_empty(v, info.field_name)


class SignInReq(BaseModel):
    email: str
    password: str

    @field_validator("email", "password")
    @classmethod
    def non_empty(cls, v: str, info):
        return _non_empty(v, info.field_name)


class TitleUpdateReq(BaseModel):
    title: str

    @field_validator("title")
    @classmethod
    def valid_title(cls, v: str):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("Valid title is required")
        return v.strip()[:MAX_TEXT]


class CreatePostReq(BaseModel):
    content: str = Field(..., max_length=MAX_TEXT)
    author: str
    boardType: BoardType
    isNotice: bool = False

    @field_validator("content", "author")
    @classmethod
    def non_empty(cls, v: str, info):
        return _non_empty(v, info.field_name)


class VoteReq(BaseModel):
    action: Literal["like", "dislike"]


class CreateReplyReq(BaseModel):
    content: str = Field(..., max_length=MAX_TEXT)
    author: str
    # 클라이언트 호환용 필드. 실제 관리자 여부는 토큰의 역할로 판정
    isAdmin: Optional[bool] = None

    @field_validator("content", "author")
    @classmethod
    def non_empty(cls, v: str, info):
        return _non_empty(v, info.field_name)


class CreateEvaluationReq(BaseModel):
    rating: int = Field(..., ge=1, le=5, strict=True)
    feedback: Optional[str] = Field(default="", max_length=MAX_TEXT)
    videoUrl: Optional[str] = ""
    timestamp: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def iso_timestamp(cls, v: Optional[str]) -> Optional[str]:
        return _iso_timestamp(v) if v else None
