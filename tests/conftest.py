import itertools
import time

import pytest
from fastapi.testclient import TestClient

from manion.app import create_app
from manion.config import Settings
from manion.db import make_engine, make_session_factory
from manion.errors import UpstreamError
from manion.kv import KVStore
from manion.schemas import Role, User

PREFIX = "/make-server-3a80e39f"

ADMIN_TOKEN = "admin-token"
USER_TOKEN = "user-token"
OTHER_TOKEN = "other-token"
ANON_KEY = "anon-key"

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class FakeIdentity:
    """SupabaseAuth와 같은 인터페이스의 인메모리 대역"""

    def __init__(self):
        self.tokens = {
            ADMIN_TOKEN: User(id="admin-1", email="manionadmin@manion.com", name="Manion Admin", role=Role.ADMIN),
            USER_TOKEN: User(id="user-1", email="student@example.com", name="학생"),
            OTHER_TOKEN: User(id="user-2", email="other@example.com", name="다른 학생"),
        }

    def verify_token(self, token):
        if not token or token == ANON_KEY:
            return None
        return self.tokens.get(token)

    def sign_up(self, email, password, name):
        if email == "taken@example.com":
            raise UpstreamError("A user with this email address has already been registered", status=422)
        return {"id": "new-user", "email": email, "user_metadata": {"name": name}}

    def sign_in(self, email, password):
        if password != "secret":
            raise UpstreamError("Invalid login credentials", status=400)
        user = {"id": "user-1", "email": email, "user_metadata": {"name": "학생"}, "app_metadata": {}}
        return {"user": user, "session": {"access_token": USER_TOKEN, "user": user}}

    def oauth_url(self, provider):
        if provider not in ("google", "kakao"):
            raise UpstreamError(f"Unsupported provider: {provider}", status=400)
        return f"https://sb.test/auth/v1/authorize?provider={provider}"

    def ensure_admin(self, email, password):
        return False


class FakeStorage:
    def __init__(self):
        self.blobs = {}
        self.fail_uploads = False
        self._seq = itertools.count(1)

    def ensure_bucket(self):
        return False

    def upload(self, name, data, content_type):
        if self.fail_uploads:
            raise UpstreamError("storage down", status=503)
        self.blobs[name] = (data, content_type)

    def signed_url(self, name, expires_in=3600):
        return f"https://sb.test/storage/v1/object/sign/uploads/{name}?token=t{next(self._seq)}"

    def remove(self, names):
        for name in names:
            self.blobs.pop(name, None)


@pytest.fixture
def settings():
    return Settings(
        supabase_url="https://sb.test",
        anon_key=ANON_KEY,
        admin_emails=["manionadmin@manion.com"],
        inline_worker=False,
        processing_delay=10.0,
    )


@pytest.fixture
def kv():
    return KVStore(make_session_factory(make_engine("sqlite://")))


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def app(settings, kv, identity, storage):
    return create_app(settings=settings, kv=kv, identity=identity, storage=storage)


@pytest.fixture
def client(app):
    return TestClient(app)


def auth(token):
    return {"Authorization": f"Bearer {token}"}


def upload(client, token=None, title="이차방정식", data=PNG, content_type="image/png", filename="problem.png"):
    headers = auth(token) if token else {}
    return client.post(
        f"{PREFIX}/upload",
        files={"image": (filename, data, content_type)},
        data={"title": title} if title is not None else None,
        headers=headers,
    )


def finish_jobs(app, after=11.0):
    """처리 지연(10초)이 지난 시점으로 작업 러너를 한 번 돌림"""
    return app.state.jobs.run_due(now=time.time() + after)
