from conftest import PNG, PREFIX, USER_TOKEN, auth, finish_jobs, upload


def test_health(client):
    r = client.get(f"{PREFIX}/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_upload_then_poll(client, app, storage):
    r = upload(client)
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    problem_id = body["problemId"]
    assert problem_id.startswith("problem_")

    # 업로드 직후에는 처리 중
    r = client.get(f"{PREFIX}/problem/{problem_id}")
    assert r.status_code == 200
    problem = r.json()
    assert problem["status"] == "processing"
    assert problem["videoUrl"] is None
    assert problem["title"] == "이차방정식"
    assert problem["fileName"] in storage.blobs
    assert problem["imageUrl"].startswith("https://")

    # 지연이 지나기 전에는 그대로
    assert app.state.jobs.run_due() == 0
    assert client.get(f"{PREFIX}/problem/{problem_id}").json()["status"] == "processing"

    assert finish_jobs(app) == 1
    problem = client.get(f"{PREFIX}/problem/{problem_id}").json()
    assert problem["status"] == "completed"
    assert problem["videoUrl"].startswith("https://")
    assert problem_id in problem["videoUrl"]

    # 완료 후 되돌아가지 않음
    finish_jobs(app, after=100)
    assert client.get(f"{PREFIX}/problem/{problem_id}").json()["status"] == "completed"


def test_polling_is_idempotent_with_fresh_signed_urls(client):
    problem_id = upload(client).json()["problemId"]
    first = client.get(f"{PREFIX}/problem/{problem_id}").json()
    second = client.get(f"{PREFIX}/problem/{problem_id}").json()
    assert first.pop("imageUrl") != second.pop("imageUrl")
    assert first == second


def test_upload_without_title_uses_default(client):
    problem_id = upload(client, title=None).json()["problemId"]
    assert client.get(f"{PREFIX}/problem/{problem_id}").json()["title"] == "Untitled Problem"


def test_upload_requires_image(client):
    r = client.post(f"{PREFIX}/upload", data={"title": "no file"})
    assert r.status_code == 400
    assert r.json()["error"] == "No image file provided"


def test_upload_rejects_non_image(client):
    r = upload(client, data=b"%PDF-1.4", content_type="application/pdf", filename="a.pdf")
    assert r.status_code == 400


def test_upload_rejects_oversized_image(client, settings):
    big = PNG + b"\x00" * settings.max_upload_bytes
    r = upload(client, data=big)
    assert r.status_code == 400


def test_upload_storage_failure(client, storage, kv):
    storage.fail_uploads = True
    r = upload(client)
    assert r.status_code == 500
    assert r.json()["error"] == "Failed to upload image"
    assert kv.get_by_prefix("problem_") == []


def test_unknown_problem_is_404(client):
    r = client.get(f"{PREFIX}/problem/problem_0_missing")
    assert r.status_code == 404
    assert r.json()["error"] == "Problem not found"


def test_problem_route_does_not_expose_other_keys(client, kv):
    kv.set("user_history_user-1", {"problems": [], "comments": [], "evaluations": []})
    assert client.get(f"{PREFIX}/problem/user_history_user-1").status_code == 404


def test_authenticated_upload_records_owner_and_history(client, app, kv):
    problem_id = upload(client, token=USER_TOKEN).json()["problemId"]
    problem = kv.get(problem_id)
    assert problem["userId"] == "user-1"
    assert problem["userEmail"] == "student@example.com"

    history = kv.get("user_history_user-1")
    assert [p["problemId"] for p in history["problems"]] == [problem_id]
    assert history["problems"][0]["status"] == "processing"

    finish_jobs(app)
    entry = kv.get("user_history_user-1")["problems"][0]
    assert entry["status"] == "completed"
    assert entry["videoUrl"] == kv.get(problem_id)["videoUrl"]


def test_anonymous_key_counts_as_no_user(client, kv):
    problem_id = upload(client, token="anon-key").json()["problemId"]
    assert kv.get(problem_id)["userId"] is None
    assert kv.get_by_prefix("user_history_") == []


def test_invalid_token_is_treated_as_anonymous(client, kv):
    r = client.post(
        f"{PREFIX}/upload",
        files={"image": ("p.jpg", PNG, "image/jpeg")},
        headers=auth("garbage"),
    )
    assert r.status_code == 200
    assert kv.get(r.json()["problemId"])["userId"] is None
