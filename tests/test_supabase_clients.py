import json

import httpx
import pytest

from manion.config import Settings
from manion.errors import UpstreamError
from manion.identity import SupabaseAuth
from manion.schemas import Role
from manion.storage import SupabaseStorage

SETTINGS = Settings(
    supabase_url="https://sb.test",
    service_role_key="service-key",
    anon_key="anon-key",
    admin_emails=["boss@manion.com"],
    bucket="uploads",
)


def mock_client(handler, path):
    return httpx.Client(transport=httpx.MockTransport(handler), base_url=f"https://sb.test{path}")


# ───────── Auth ─────────
USERS = {
    "tok-regular": {"id": "u1", "email": "kid@example.com", "user_metadata": {"name": "학생"}},
    "tok-claim": {"id": "u2", "email": "mod@example.com", "app_metadata": {"role": "admin"}},
    "tok-email": {"id": "u3", "email": "Boss@Manion.com"},
}


def auth_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/auth/v1/user":
        token = request.headers["Authorization"].split(" ", 1)[1]
        if token in USERS:
            return httpx.Response(200, json=USERS[token])
        return httpx.Response(401, json={"msg": "invalid JWT"})
    if request.url.path == "/auth/v1/admin/users":
        assert request.headers["apikey"] == "service-key"
        body = json.loads(request.content)
        if body["email"] == "taken@example.com":
            return httpx.Response(422, json={"msg": "A user with this email address has already been registered"})
        return httpx.Response(200, json={"id": "new", "email": body["email"], "app_metadata": body.get("app_metadata", {})})
    if request.url.path == "/auth/v1/token":
        assert request.url.params["grant_type"] == "password"
        body = json.loads(request.content)
        if body["password"] != "secret":
            return httpx.Response(400, json={"error_description": "Invalid login credentials"})
        return httpx.Response(200, json={"access_token": "jwt", "user": {"id": "u1", "email": body["email"]}})
    return httpx.Response(404)


@pytest.fixture
def identity():
    return SupabaseAuth(SETTINGS, http=mock_client(auth_handler, "/auth/v1"))


def test_verify_token_roles(identity):
    regular = identity.verify_token("tok-regular")
    assert regular.id == "u1" and regular.name == "학생" and regular.role is Role.REGULAR
    assert identity.verify_token("tok-claim").is_admin
    assert identity.verify_token("tok-email").is_admin


def test_verify_token_rejections(identity):
    assert identity.verify_token(None) is None
    assert identity.verify_token("anon-key") is None
    assert identity.verify_token("expired") is None


def test_verify_token_network_error():
    def boom(request):
        raise httpx.ConnectError("down", request=request)

    identity = SupabaseAuth(SETTINGS, http=mock_client(boom, "/auth/v1"))
    assert identity.verify_token("tok-regular") is None


def test_sign_up_and_sign_in(identity):
    assert identity.sign_up("new@example.com", "pw", "새 학생")["email"] == "new@example.com"
    with pytest.raises(UpstreamError) as exc:
        identity.sign_up("taken@example.com", "pw", "x")
    assert exc.value.status == 422

    data = identity.sign_in("kid@example.com", "secret")
    assert data["session"]["access_token"] == "jwt"
    assert data["user"]["id"] == "u1"
    with pytest.raises(UpstreamError, match="Invalid login credentials"):
        identity.sign_in("kid@example.com", "wrong")


def test_oauth_url(identity):
    assert identity.oauth_url("kakao") == "https://sb.test/auth/v1/authorize?provider=kakao"
    with pytest.raises(UpstreamError):
        identity.oauth_url("myspace")


def test_ensure_admin(identity):
    assert identity.ensure_admin("boss@manion.com", "pw") is True
    assert identity.ensure_admin("taken@example.com", "pw") is False


# ───────── Storage ─────────
def test_storage_upload_sign_remove():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.url.path == "/storage/v1/object/uploads/a.png" and request.method == "POST":
            assert request.headers["Content-Type"] == "image/png"
            assert request.content == b"img"
            return httpx.Response(200, json={"Key": "uploads/a.png"})
        if request.url.path == "/storage/v1/object/sign/uploads/a.png":
            assert json.loads(request.content) == {"expiresIn": 60}
            return httpx.Response(200, json={"signedURL": "/object/sign/uploads/a.png?token=abc"})
        if request.url.path == "/storage/v1/object/uploads" and request.method == "DELETE":
            assert json.loads(request.content) == {"prefixes": ["a.png"]}
            return httpx.Response(200, json=[])
        return httpx.Response(404, json={"message": "not found"})

    storage = SupabaseStorage(SETTINGS, http=mock_client(handler, "/storage/v1"))
    storage.upload("a.png", b"img", "image/png")
    assert storage.signed_url("a.png", 60) == "https://sb.test/storage/v1/object/sign/uploads/a.png?token=abc"
    storage.remove(["a.png"])
    assert ("DELETE", "/storage/v1/object/uploads") in seen
    # 서명 실패는 None
    assert storage.signed_url("missing.png") is None


def test_storage_errors_and_bucket_setup():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/storage/v1/bucket" and request.method == "GET":
            return httpx.Response(200, json=[{"name": "other"}])
        if request.url.path == "/storage/v1/bucket" and request.method == "POST":
            assert json.loads(request.content)["public"] is False
            return httpx.Response(200, json={"name": "uploads"})
        return httpx.Response(500, json={"error": "internal"})

    storage = SupabaseStorage(SETTINGS, http=mock_client(handler, "/storage/v1"))
    assert storage.ensure_bucket() is True
    with pytest.raises(UpstreamError) as exc:
        storage.upload("a.png", b"img", "image/png")
    assert exc.value.status == 500
