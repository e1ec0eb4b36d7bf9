# manion/kv.py
"""
key-value 문서 저장소 어댑터

Supabase Postgres의 kv_store 테이블(key text PK, value jsonb)을 평평한
key 네임스페이스로 사용한다.
- get / set / delete / get_by_prefix: 단순 CRUD
- mutate: 같은 key에 대한 read-modify-write를 직렬화
  (프로세스 내 key 단위 락 + 행 락 SELECT ... FOR UPDATE,
   sqlite 파일 폴백은 BEGIN IMMEDIATE로 프로세스 간 직렬화)
"""
from __future__ import annotations

import copy
import logging
import threading
import zlib
from typing import Any, Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.attributes import flag_modified

from .models import DBKeyValue

log = logging.getLogger(__name__)

_LOCK_STRIPES = 64

Mutator = Callable[[Any], Optional[Any]]


class KVStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
        self._locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[zlib.crc32(key.encode("utf-8")) % _LOCK_STRIPES]

    def get(self, key: str) -> Optional[Any]:
        with self._session_factory() as db:
            row = db.get(DBKeyValue, key)
            return copy.deepcopy(row.value) if row else None

    def set(self, key: str, value: Any) -> None:
        self.mutate(key, lambda _current: value)

    def delete(self, key: str) -> bool:
        with self._lock_for(key), self._session_factory() as db:
            row = db.get(DBKeyValue, key)
            if row is None:
                return False
            db.delete(row)
            db.commit()
            return True

    def get_by_prefix(self, prefix: str) -> List[Any]:
        with self._session_factory() as db:
            rows = db.execute(
                select(DBKeyValue).where(DBKeyValue.key.startswith(prefix, autoescape=True))
            ).scalars().all()
            return [copy.deepcopy(r.value) for r in rows]

    def mutate(self, key: str, fn: Mutator, default: Any = None) -> Optional[Any]:
        """
        현재 값(없으면 default 복사본)을 fn에 넘기고, fn이 돌려준 값을 저장한다.
        - fn이 None을 돌려주면 아무것도 쓰지 않는다
        - 반환값: 저장된 값 (쓰지 않았으면 None)
        """
        with self._lock_for(key):
            try:
                return self._mutate_once(key, fn, default)
            except IntegrityError:
                # 다른 프로세스가 같은 key를 먼저 INSERT함. 이제 행이 있으므로 행 락으로 한 번 더
                log.info("kv insert race on %s, retrying", key)
                return self._mutate_once(key, fn, default)

    def _mutate_once(self, key: str, fn: Mutator, default: Any) -> Optional[Any]:
        with self._session_factory() as db:
            row = db.execute(
                select(DBKeyValue).where(DBKeyValue.key == key).with_for_update()
            ).scalar_one_or_none()

            if row is not None:
                current = copy.deepcopy(row.value)
            elif default is not None:
                current = copy.deepcopy(default)
            else:
                current = None

            updated = fn(current)
            if updated is None:
                db.rollback()
                return None

            if row is None:
                db.add(DBKeyValue(key=key, value=updated))
            else:
                row.value = updated
                flag_modified(row, "value")
            db.commit()
            return copy.deepcopy(updated)
