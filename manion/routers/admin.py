# manion/routers/admin.py
"""
관리자 전용 라우트

모든 라우트는 require_admin을 먼저 통과해야 하며(실패 시 401),
삭제는 영향을 받는 사용자 기록(user_history_*)까지 함께 정리한다.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from .. import history
from ..auth import require_admin
from ..config import Settings
from ..deps import get_jobs, get_kv, get_settings, get_storage
from ..errors import NotFound, UpstreamError
from ..jobs import JobRunner
from ..kv import KVStore
from ..schemas import BOARD_TYPES, Post
from ..stats import compute_admin_stats
from ..storage import SupabaseStorage
from .community import is_post_id, sort_newest_first

log = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


def _load(kv: KVStore, key: str, prefix: str, label: str) -> dict:
    raw = kv.get(key) if key.startswith(prefix) else None
    if not raw:
        raise NotFound(f"{label} not found")
    return raw


# ───────────── 평가 ─────────────
@router.get("/evaluations")
def admin_list_evaluations(kv: KVStore = Depends(get_kv)):
    return sort_newest_first(kv.get_by_prefix("evaluation_"))


@router.delete("/evaluations/{evaluation_id}")
def admin_delete_evaluation(evaluation_id: str, kv: KVStore = Depends(get_kv)):
    evaluation = _load(kv, evaluation_id, "evaluation_", "Evaluation")
    kv.delete(evaluation_id)
    if evaluation.get("userId"):
        history.remove_evaluation(kv, evaluation["userId"], evaluation_id)
    return {"success": True, "message": "Evaluation deleted successfully"}


# ───────────── 문제 ─────────────
@router.get("/problems")
def admin_list_problems(
    kv: KVStore = Depends(get_kv),
    storage: SupabaseStorage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
):
    problems = sort_newest_first(kv.get_by_prefix("problem_"), field="uploadTime")
    for problem in problems:
        if problem.get("fileName"):
            problem["imageUrl"] = storage.signed_url(problem["fileName"], settings.signed_url_ttl)
    return problems


@router.delete("/problems/{problem_id}")
def admin_delete_problem(
    problem_id: str,
    kv: KVStore = Depends(get_kv),
    storage: SupabaseStorage = Depends(get_storage),
    jobs: JobRunner = Depends(get_jobs),
):
    problem = _load(kv, problem_id, "problem_", "Problem")

    if problem.get("fileName"):
        try:
            storage.remove([problem["fileName"]])
        except UpstreamError as e:
            log.warning("image remove failed for %s: %s", problem_id, e.message)

    kv.delete(problem_id)
    jobs.cancel(problem_id)
    if problem.get("userId"):
        history.remove_problem(kv, problem["userId"], problem_id)
    return {"success": True, "message": "Problem deleted successfully"}


# ───────────── 게시글 / 답글 ─────────────
@router.delete("/posts/{post_id}")
def admin_delete_post(post_id: str, kv: KVStore = Depends(get_kv)):
    post = _load(kv, post_id, "post_", "Post")
    kv.delete(post_id)

    # 글쓴이 + 답글 작성자들의 기록에서 이 글 관련 항목 제거
    authors = {post.get("userId")} | {r.get("userId") for r in post.get("replies") or []}
    for user_id in filter(None, authors):
        history.remove_comments(kv, user_id, post_id)
    return {"success": True, "message": "Post deleted successfully"}


@router.delete("/posts/{post_id}/replies/{reply_id}")
def admin_delete_reply(post_id: str, reply_id: str, kv: KVStore = Depends(get_kv)):
    removed = {}

    def splice(raw):
        if raw is None:
            return None
        post = Post.model_validate(raw)
        for i, reply in enumerate(post.replies):
            if reply.id == reply_id:
                removed["reply"] = post.replies.pop(i)
                return post.model_dump()
        return None

    if not is_post_id(post_id) or kv.get(post_id) is None:
        raise NotFound("Post not found")
    kv.mutate(post_id, splice)
    if "reply" not in removed:
        raise NotFound("Reply not found")

    if removed["reply"].userId:
        history.remove_comments(kv, removed["reply"].userId, post_id, reply_id)
    return {"success": True, "message": "Reply deleted successfully"}


# ───────────── 통계 ─────────────
@router.get("/stats")
def admin_stats(kv: KVStore = Depends(get_kv)):
    problems = kv.get_by_prefix("problem_")
    posts_by_board = {board: kv.get_by_prefix(f"post_{board}_") for board in BOARD_TYPES}
    evaluations = kv.get_by_prefix("evaluation_")
    return compute_admin_stats(problems, posts_by_board, evaluations)
