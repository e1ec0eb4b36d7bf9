# manion/history.py
"""
사용자 기록 (user_history_<userId>)

문제/댓글/평가의 원본 문서와 별도로 유지되는 비정규화 로그.
모든 변경은 kv.mutate로 key 단위 직렬화된다.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .kv import KVStore
from .schemas import (
    Evaluation,
    HistoryComment,
    HistoryEvaluation,
    HistoryProblem,
    Problem,
    UserHistory,
    user_history_key,
)
from .storage import SupabaseStorage

log = logging.getLogger(__name__)


def load_history(kv: KVStore, user_id: str) -> UserHistory:
    return UserHistory.model_validate(kv.get(user_history_key(user_id)) or {})


def _update(kv: KVStore, user_id: str, fn: Callable[[UserHistory], bool], create: bool = True) -> bool:
    """fn이 True를 돌려줄 때만 저장. create=False면 기록이 없을 때 새로 만들지 않음."""
    changed = False

    def apply(raw: Optional[Dict[str, Any]]):
        nonlocal changed
        if raw is None and not create:
            return None
        history = UserHistory.model_validate(raw or {})
        if not fn(history):
            return None
        changed = True
        return history.dump()

    kv.mutate(user_history_key(user_id), apply)
    return changed


# ───────────── 문제 ─────────────
def append_problem(kv: KVStore, user_id: str, problem: Problem) -> None:
    entry = HistoryProblem(problemId=problem.id, title=problem.title, status=problem.status, createdAt=problem.uploadTime)

    def fn(h: UserHistory) -> bool:
        h.problems.append(entry)
        return True

    _update(kv, user_id, fn)


def sync_problem(kv: KVStore, user_id: str, problem: Problem) -> bool:
    """완료/실패 전이를 기록의 해당 항목에 반영 (선형 탐색)"""

    def fn(h: UserHistory) -> bool:
        for p in h.problems:
            if p.problemId == problem.id:
                p.status = problem.status
                p.videoUrl = problem.videoUrl
                return True
        return False

    return _update(kv, user_id, fn, create=False)


def rename_problem(kv: KVStore, user_id: str, problem_id: str, title: str) -> bool:
    def fn(h: UserHistory) -> bool:
        for p in h.problems:
            if p.problemId == problem_id:
                p.title = title
                return True
        return False

    return _update(kv, user_id, fn, create=False)


def remove_problem(kv: KVStore, user_id: str, problem_id: str) -> bool:
    def fn(h: UserHistory) -> bool:
        before = len(h.problems)
        h.problems = [p for p in h.problems if p.problemId != problem_id]
        return len(h.problems) != before

    return _update(kv, user_id, fn, create=False)


# ───────────── 댓글(글/답글) ─────────────
def append_comment(kv: KVStore, user_id: str, comment: HistoryComment) -> None:
    def fn(h: UserHistory) -> bool:
        h.comments.append(comment)
        return True

    _update(kv, user_id, fn)


def remove_comments(kv: KVStore, user_id: str, post_id: str, reply_id: Optional[str] = None) -> bool:
    """reply_id가 없으면 해당 글과 그 글에 단 답글 기록까지 모두 제거"""

    def fn(h: UserHistory) -> bool:
        before = len(h.comments)
        if reply_id is None:
            h.comments = [c for c in h.comments if c.postId != post_id]
        else:
            h.comments = [c for c in h.comments if not (c.postId == post_id and c.replyId == reply_id)]
        return len(h.comments) != before

    return _update(kv, user_id, fn, create=False)


# ───────────── 평가 ─────────────
def append_evaluation(kv: KVStore, user_id: str, evaluation: Evaluation) -> None:
    entry = HistoryEvaluation(
        evaluationId=evaluation.id,
        rating=evaluation.rating,
        feedback=evaluation.feedback,
        videoUrl=evaluation.videoUrl,
        createdAt=evaluation.createdAt,
    )

    def fn(h: UserHistory) -> bool:
        h.evaluations.append(entry)
        return True

    _update(kv, user_id, fn)


def remove_evaluation(kv: KVStore, user_id: str, evaluation_id: str) -> bool:
    def fn(h: UserHistory) -> bool:
        before = len(h.evaluations)
        h.evaluations = [e for e in h.evaluations if e.evaluationId != evaluation_id]
        return len(h.evaluations) != before

    return _update(kv, user_id, fn, create=False)


# ───────────── 조회 (GET /user/history) ─────────────
def build_history_view(kv: KVStore, storage: SupabaseStorage, user_id: str, ttl: int) -> Dict[str, Any]:
    history = load_history(kv, user_id)

    # 문제마다 원본 문서를 다시 읽고 서명 URL을 새로 발급 (N+1)
    problems: List[Dict[str, Any]] = []
    for entry in history.problems:
        item = entry.model_dump(exclude_none=True)
        problem_data = kv.get(entry.problemId)
        if problem_data and problem_data.get("fileName"):
            item = {**item, "imageUrl": storage.signed_url(problem_data["fileName"], ttl), **problem_data}
        problems.append(item)

    comments = [c.model_dump(exclude_none=True) for c in history.comments]
    evaluations = [e.model_dump(exclude_none=True) for e in history.evaluations]

    return {
        "problems": list(reversed(problems)),  # 최신순
        "comments": list(reversed(comments)),
        "evaluations": list(reversed(evaluations)),
        "stats": {
            "totalProblems": len(history.problems),
            "completedProblems": sum(1 for p in history.problems if p.status == "completed"),
            "totalComments": len(history.comments),
            "totalEvaluations": len(history.evaluations),
        },
    }
