# manion/routers/evaluations.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from .. import history
from ..auth import optional_user
from ..deps import get_kv
from ..kv import KVStore
from ..schemas import CreateEvaluationReq, Evaluation, User, new_id, now_iso

router = APIRouter(tags=["evaluations"])


@router.post("/evaluations")
def create_evaluation(
    req: CreateEvaluationReq,
    user: Optional[User] = Depends(optional_user),
    kv: KVStore = Depends(get_kv),
):
    # 같은 영상에 여러 번 평가 가능 (수정/중복 검사 없음)
    evaluation = Evaluation(
        id=new_id("evaluation"),
        rating=req.rating,
        feedback=req.feedback or "",
        videoUrl=req.videoUrl or "",
        userId=user.id if user else None,
        userEmail=user.email if user else None,
        createdAt=req.timestamp or now_iso(),
    )
    kv.set(evaluation.id, evaluation.model_dump())
    if user:
        history.append_evaluation(kv, user.id, evaluation)
    return {"success": True, "evaluation": evaluation.model_dump()}
