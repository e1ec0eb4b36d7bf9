# manion/stats.py
from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .schemas import BOARD_TYPES, parse_iso

RECENT_DAYS = 30
RATING_BUCKETS = ("1", "2", "3", "4", "5")


def round_half_up(value: float, digits: int = 0) -> float:
    # round()는 은행가 반올림이라 66.5 → 66이 됨. 통계는 사사오입
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def _since(items: List[Dict[str, Any]], field: str, cutoff: datetime) -> int:
    count = 0
    for item in items:
        ts = parse_iso(item.get(field))
        if ts is not None and ts >= cutoff:
            count += 1
    return count


def compute_admin_stats(
    problems: List[Dict[str, Any]],
    posts_by_board: Dict[str, List[Dict[str, Any]]],
    evaluations: List[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """관리자 통계: 매 호출마다 전체 문서를 메모리에서 다시 집계"""
    now = now or datetime.now(timezone.utc)
    all_posts = [p for board in BOARD_TYPES for p in posts_by_board.get(board, [])]
    total_replies = sum(len(p.get("replies") or []) for p in all_posts)

    # 1) 문제
    total = len(problems)
    completed = sum(1 for p in problems if p.get("status") == "completed")
    problem_stats = {
        "total": total,
        "completed": completed,
        "processing": sum(1 for p in problems if p.get("status") == "processing"),
        "failed": sum(1 for p in problems if p.get("status") == "failed"),
        "successRate": int(round_half_up(completed / total * 100)) if total else 0,
    }

    # 2) 커뮤니티
    community_stats = {
        "totalPosts": len(all_posts),
        "generalPosts": len(posts_by_board.get("general", [])),
        "anonymousPosts": len(posts_by_board.get("anonymous", [])),
        "noticePosts": len(posts_by_board.get("notice", [])),
        "totalReplies": total_replies,
        "averageRepliesPerPost": round_half_up(total_replies / len(all_posts), 1) if all_posts else 0,
        "totalLikes": sum(int(p.get("likes") or 0) for p in all_posts),
        "totalDislikes": sum(int(p.get("dislikes") or 0) for p in all_posts),
    }

    # 3) 평가 (평점 분포는 1~5 고정 버킷)
    distribution = {b: 0 for b in RATING_BUCKETS}
    total_rating = 0
    for e in evaluations:
        rating = int(e.get("rating") or 0)
        total_rating += rating
        if str(rating) in distribution:
            distribution[str(rating)] += 1
    evaluation_stats = {
        "total": len(evaluations),
        "averageRating": round_half_up(total_rating / len(evaluations), 1) if evaluations else 0,
        "ratingDistribution": distribution,
        "withFeedback": sum(1 for e in evaluations if (e.get("feedback") or "").strip()),
    }

    # 4) 최근 30일
    cutoff = now - timedelta(days=RECENT_DAYS)
    recent_stats = {
        "problemsLast30Days": _since(problems, "uploadTime", cutoff),
        "postsLast30Days": _since(all_posts, "createdAt", cutoff),
        "evaluationsLast30Days": _since(evaluations, "createdAt", cutoff),
    }

    return {
        "problems": problem_stats,
        "community": community_stats,
        "evaluations": evaluation_stats,
        "recent": recent_stats,
        "overview": {
            "totalUsers": len({p["userId"] for p in all_posts if p.get("userId")}),
            "totalActivity": total + len(all_posts) + total_replies + len(evaluations),
        },
    }
