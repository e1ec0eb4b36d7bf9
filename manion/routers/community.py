# manion/routers/community.py
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends

from .. import history
from ..auth import optional_user
from ..deps import get_kv
from ..errors import AuthForbidden, NotFound, ValidationError
from ..kv import KVStore
from ..schemas import (
    BOARD_TYPES,
    CreatePostReq,
    CreateReplyReq,
    HistoryComment,
    Post,
    Reply,
    User,
    VoteReq,
    new_id,
    now_iso,
    parse_iso,
)

log = logging.getLogger(__name__)

router = APIRouter(prefix="/community/posts", tags=["community"])

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_newest_first(items: List[Dict[str, Any]], field: str = "createdAt") -> List[Dict[str, Any]]:
    return sorted(items, key=lambda d: parse_iso(d.get(field)) or _EPOCH, reverse=True)


def is_post_id(post_id: str) -> bool:
    return post_id.startswith("post_")


@router.post("")
def create_post(
    req: CreatePostReq,
    user: Optional[User] = Depends(optional_user),
    kv: KVStore = Depends(get_kv),
):
    # 공지 게시판은 관리자만. 일반/익명 게시판은 비로그인도 허용
    if req.boardType == "notice" and (user is None or not user.is_admin):
        raise AuthForbidden("Only admin can create notice posts")

    post = Post(
        id=new_id(f"post_{req.boardType}"),
        content=req.content,
        author=req.author,
        boardType=req.boardType,
        userId=user.id if user else None,
        createdAt=now_iso(),
        isNotice=req.boardType == "notice" or bool(user and user.is_admin and req.isNotice),
    )
    kv.set(post.id, post.model_dump())

    if user:
        history.append_comment(
            kv,
            user.id,
            HistoryComment(type="post", postId=post.id, content=post.content, boardType=post.boardType, createdAt=post.createdAt),
        )
    return {"success": True, "post": post.model_dump()}


@router.get("/{board_type}")
def list_posts(board_type: str, kv: KVStore = Depends(get_kv)):
    if board_type not in BOARD_TYPES:
        raise ValidationError("Invalid board type")
    return sort_newest_first(kv.get_by_prefix(f"post_{board_type}_"))


@router.post("/{post_id}/like")
def vote_post(post_id: str, req: VoteReq, kv: KVStore = Depends(get_kv)):
    # 사용자별 중복 방지 없음: 호출마다 1씩 증가
    field = "likes" if req.action == "like" else "dislikes"

    def bump(raw):
        if raw is None:
            return None
        post = Post.model_validate(raw)
        setattr(post, field, getattr(post, field) + 1)
        return post.model_dump()

    updated = kv.mutate(post_id, bump) if is_post_id(post_id) else None
    if updated is None:
        raise NotFound("Post not found")
    return {"success": True, "post": updated}


@router.post("/{post_id}/reply")
def reply_post(
    post_id: str,
    req: CreateReplyReq,
    user: Optional[User] = Depends(optional_user),
    kv: KVStore = Depends(get_kv),
):
    reply = Reply(
        id=new_id("reply"),
        content=req.content,
        author=req.author,
        userId=user.id if user else None,
        createdAt=now_iso(),
        isAdmin=bool(user and user.is_admin),
    )

    def append(raw):
        if raw is None:
            return None
        post = Post.model_validate(raw)
        post.replies.append(reply)
        return post.model_dump()

    updated = kv.mutate(post_id, append) if is_post_id(post_id) else None
    if updated is None:
        raise NotFound("Post not found")

    if user:
        history.append_comment(
            kv,
            user.id,
            HistoryComment(type="reply", postId=post_id, replyId=reply.id, content=reply.content, createdAt=reply.createdAt),
        )
    return {"success": True, "reply": reply.model_dump()}
