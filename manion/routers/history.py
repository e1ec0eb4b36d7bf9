# manion/routers/history.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from .. import history
from ..auth import require_user
from ..config import Settings
from ..deps import get_kv, get_settings, get_storage
from ..kv import KVStore
from ..schemas import Problem, TitleUpdateReq, User
from ..storage import SupabaseStorage

router = APIRouter(prefix="/user/history", tags=["history"])


@router.get("")
def get_history(
    user: User = Depends(require_user),
    kv: KVStore = Depends(get_kv),
    storage: SupabaseStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    return history.build_history_view(kv, storage, user.id, settings.signed_url_ttl)


@router.delete("/problem/{problem_id}")
def delete_history_problem(
    problem_id: str,
    user: User = Depends(require_user),
    kv: KVStore = Depends(get_kv),
):
    # 기록에서만 제거. 원본 문제 문서는 관리자 삭제로만 지워짐
    history.remove_problem(kv, user.id, problem_id)
    return {"success": True, "message": "Problem removed from history"}


@router.put("/problem/{problem_id}/title")
def update_history_problem_title(
    problem_id: str,
    req: TitleUpdateReq,
    user: User = Depends(require_user),
    kv: KVStore = Depends(get_kv),
):
    title = req.title

    # 원본 문서는 본인 소유일 때만 수정
    def rename(raw):
        if not raw or raw.get("userId") != user.id:
            return None
        problem = Problem.model_validate(raw)
        problem.title = title
        return problem.model_dump()

    if problem_id.startswith("problem_"):
        kv.mutate(problem_id, rename)
    history.rename_problem(kv, user.id, problem_id, title)
    return {"success": True, "message": "Problem title updated successfully"}
