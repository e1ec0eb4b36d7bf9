# manion/routers/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..deps import get_identity
from ..errors import UpstreamError, UpstreamFailure, ValidationError
from ..identity import SupabaseAuth
from ..schemas import SignInReq, SignUpReq

log = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


def _as_api_error(action: str, e: UpstreamError):
    # 업스트림 4xx(중복 이메일, 잘못된 비밀번호 등)는 메시지를 그대로 400으로
    log.warning("%s error: %s", action, e.message)
    if e.status is not None and e.status < 500:
        return ValidationError(e.message)
    return UpstreamFailure()


@router.post("/signup")
def signup(req: SignUpReq, identity: SupabaseAuth = Depends(get_identity)):
    try:
        user = identity.sign_up(req.email, req.password, req.name)
    except UpstreamError as e:
        raise _as_api_error("Signup", e)
    return {"success": True, "user": user}


@router.post("/signin")
def signin(req: SignInReq, identity: SupabaseAuth = Depends(get_identity)):
    try:
        data = identity.sign_in(req.email, req.password)
    except UpstreamError as e:
        raise _as_api_error("Signin", e)
    return {"success": True, "user": data["user"], "session": data["session"]}


@router.post("/auth/{provider}")
def oauth(provider: str, identity: SupabaseAuth = Depends(get_identity)):
    try:
        url = identity.oauth_url(provider)
    except UpstreamError as e:
        raise _as_api_error(f"{provider} auth", e)
    return {"success": True, "url": url}
