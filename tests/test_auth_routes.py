from conftest import PREFIX


def test_signup(client):
    r = client.post(f"{PREFIX}/signup", json={"email": "new@example.com", "password": "pw", "name": "새 학생"})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert r.json()["user"]["email"] == "new@example.com"


def test_signup_requires_fields(client):
    r = client.post(f"{PREFIX}/signup", json={"email": "new@example.com", "password": "pw"})
    assert r.status_code == 400
    r = client.post(f"{PREFIX}/signup", json={"email": " ", "password": "pw", "name": "n"})
    assert r.status_code == 400


def test_signup_upstream_rejection_is_400(client):
    r = client.post(f"{PREFIX}/signup", json={"email": "taken@example.com", "password": "pw", "name": "n"})
    assert r.status_code == 400
    assert "already been registered" in r.json()["error"]


def test_signin(client):
    r = client.post(f"{PREFIX}/signin", json={"email": "student@example.com", "password": "secret"})
    assert r.status_code == 200
    body = r.json()
    assert body["session"]["access_token"] == "user-token"
    assert body["user"]["id"] == "user-1"

    r = client.post(f"{PREFIX}/signin", json={"email": "student@example.com", "password": "nope"})
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid login credentials"


def test_oauth_urls(client):
    for provider in ("google", "kakao"):
        r = client.post(f"{PREFIX}/auth/{provider}")
        assert r.status_code == 200
        assert r.json() == {"success": True, "url": f"https://sb.test/auth/v1/authorize?provider={provider}"}
    assert client.post(f"{PREFIX}/auth/naver").status_code == 400


def test_cors_allows_any_origin(client):
    r = client.options(
        f"{PREFIX}/health",
        headers={"Origin": "https://manion.example", "Access-Control-Request-Method": "GET"},
    )
    assert r.status_code == 200
    assert r.headers["access-control-allow-origin"] == "*"
