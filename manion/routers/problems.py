# manion/routers/problems.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from .. import history
from ..auth import optional_user
from ..config import Settings
from ..deps import get_jobs, get_kv, get_settings, get_storage
from ..errors import NotFound, UpstreamError, UpstreamFailure, ValidationError
from ..jobs import JobRunner
from ..kv import KVStore
from ..schemas import MAX_TEXT, Problem, User, new_id, now_iso
from ..storage import SupabaseStorage

log = logging.getLogger(__name__)

router = APIRouter(tags=["problems"])

ALLOWED_IMAGE_TYPES = {"image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png"}


def _extension(filename: Optional[str], content_type: str) -> str:
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        if ext in ("jpg", "jpeg", "png"):
            return ext
    return ALLOWED_IMAGE_TYPES[content_type]


def load_problem(kv: KVStore, problem_id: str) -> dict:
    # problem_ 접두사가 아닌 key(user_history_ 등)는 이 경로로 노출하지 않음
    raw = kv.get(problem_id) if problem_id.startswith("problem_") else None
    if not raw:
        raise NotFound("Problem not found")
    return raw


@router.post("/upload")
def upload_problem(
    image: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    user: Optional[User] = Depends(optional_user),
    kv: KVStore = Depends(get_kv),
    storage: SupabaseStorage = Depends(get_storage),
    jobs: JobRunner = Depends(get_jobs),
    settings: Settings = Depends(get_settings),
):
    if image is None:
        raise ValidationError("No image file provided")

    # 1) 서버 측 재검증 (타입/크기)
    content_type = (image.content_type or "").lower()
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only JPG, JPEG or PNG images are allowed")
    data = image.file.read(settings.max_upload_bytes + 1)
    if not data:
        raise ValidationError("Empty image file")
    if len(data) > settings.max_upload_bytes:
        raise ValidationError(f"Image must be at most {settings.max_upload_bytes // (1024 * 1024)}MB")

    # 2) 스토리지 업로드
    file_name = f"{new_id('math-problem').replace('_', '-')}.{_extension(image.filename, content_type)}"
    try:
        storage.upload(file_name, data, content_type)
    except UpstreamError as e:
        log.warning("Upload error: %s", e.message)
        raise UpstreamFailure("Failed to upload image")

    # 3) 문제 문서 + 사용자 기록
    problem = Problem(
        id=new_id("problem"),
        title=((title or "").strip() or "Untitled Problem")[:MAX_TEXT],
        fileName=file_name,
        status="processing",
        uploadTime=now_iso(),
        userId=user.id if user else None,
        userEmail=user.email if user else None,
        userName=user.name if user else None,
    )
    kv.set(problem.id, problem.model_dump())
    if user:
        history.append_problem(kv, user.id, problem)

    # 4) 영상 생성 작업 등록 (완료는 폴링으로만 관찰)
    jobs.enqueue(problem, settings.processing_delay)
    log.info("problem %s uploaded (user=%s)", problem.id, user.id if user else "-")

    return {
        "success": True,
        "problemId": problem.id,
        "message": "Image uploaded successfully, video generation started",
    }


@router.get("/problem/{problem_id}")
def get_problem(
    problem_id: str,
    kv: KVStore = Depends(get_kv),
    storage: SupabaseStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    problem = load_problem(kv, problem_id)
    if problem.get("fileName"):
        problem["imageUrl"] = storage.signed_url(problem["fileName"], settings.signed_url_ttl)
    return problem
