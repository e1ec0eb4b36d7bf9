# manion/auth.py
"""Authentication and authorisation helpers."""
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header

from .deps import get_identity
from .errors import AuthRequired
from .identity import SupabaseAuth
from .schemas import User


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


def authenticate_user(identity: SupabaseAuth, authorization: Optional[str]) -> Optional[User]:
    """토큰 없음/잘못됨/익명 키 → None"""
    return identity.verify_token(bearer_token(authorization))


def authenticate_admin(identity: SupabaseAuth, authorization: Optional[str]) -> Optional[User]:
    user = authenticate_user(identity, authorization)
    if not user or not user.is_admin:
        return None
    return user


# ───────── FastAPI 의존성 ─────────
def optional_user(
    authorization: Optional[str] = Header(default=None),
    identity: SupabaseAuth = Depends(get_identity),
) -> Optional[User]:
    return authenticate_user(identity, authorization)


def require_user(user: Optional[User] = Depends(optional_user)) -> User:
    if user is None:
        raise AuthRequired("Authentication required")
    return user


def require_admin(
    authorization: Optional[str] = Header(default=None),
    identity: SupabaseAuth = Depends(get_identity),
) -> User:
    admin = authenticate_admin(identity, authorization)
    if admin is None:
        raise AuthRequired("Admin authentication required")
    return admin
