import threading

from manion.db import make_engine, make_session_factory
from manion.kv import KVStore


def test_crud(kv):
    assert kv.get("problem_1") is None
    kv.set("problem_1", {"id": "problem_1", "n": 1})
    assert kv.get("problem_1") == {"id": "problem_1", "n": 1}
    kv.set("problem_1", {"id": "problem_1", "n": 2})
    assert kv.get("problem_1")["n"] == 2
    assert kv.delete("problem_1") is True
    assert kv.delete("problem_1") is False


def test_prefix_scan_is_exact(kv):
    kv.set("post_general_1_a", {"b": "general"})
    kv.set("post_general_2_b", {"b": "general"})
    kv.set("post_anonymous_1_a", {"b": "anonymous"})
    # LIKE 와일드카드(_)가 그대로 매칭되지 않아야 함
    kv.set("postXgeneralX3", {"b": "wildcard"})

    assert [v["b"] for v in kv.get_by_prefix("post_general_")] == ["general", "general"]
    assert [v["b"] for v in kv.get_by_prefix("post_anonymous_")] == ["anonymous"]


def test_returned_values_are_copies(kv):
    kv.set("k", {"items": [1]})
    value = kv.get("k")
    value["items"].append(2)
    assert kv.get("k") == {"items": [1]}


def test_mutate(kv):
    def push(v):
        v["items"].append(len(v["items"]))
        return v

    assert kv.mutate("k", push, default={"items": []}) == {"items": [0]}
    assert kv.mutate("k", push) == {"items": [0, 1]}
    # None이면 쓰지 않음
    assert kv.mutate("k", lambda v: None) is None
    assert kv.mutate("missing", lambda v: v) is None
    assert kv.get("missing") is None


def test_concurrent_mutations_do_not_lose_updates(tmp_path):
    kv = KVStore(make_session_factory(make_engine(f"sqlite:///{tmp_path / 'kv.db'}")))
    kv.set("post_general_1_a", {"replies": []})

    def add_reply(i):
        def fn(post):
            post["replies"].append(i)
            return post
        kv.mutate("post_general_1_a", fn)

    threads = [threading.Thread(target=add_reply, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(kv.get("post_general_1_a")["replies"]) == list(range(20))


def test_two_stores_on_one_sqlite_file_do_not_lose_updates(tmp_path):
    # API 프로세스와 워커 프로세스가 같은 파일을 쓰는 상황 (엔진/락이 각각 따로)
    url = f"sqlite:///{tmp_path / 'shared.db'}"
    stores = [KVStore(make_session_factory(make_engine(url))) for _ in range(2)]
    errors = []

    def bump(v):
        v["n"] += 1
        return v

    def worker(store):
        try:
            for _ in range(50):
                store.mutate("counter", bump, default={"n": 0})
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(s,)) for s in stores]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert stores[0].get("counter") == {"n": 100}


def test_mutate_retries_when_key_was_inserted_concurrently():
    factory = make_session_factory(make_engine("sqlite://"))
    kv, other = KVStore(factory), KVStore(factory)
    calls = []

    def bump(v):
        if not calls:
            # 첫 시도가 "없음"을 본 뒤 다른 쪽이 먼저 INSERT
            other.set("counter", {"n": 10})
        calls.append(dict(v))
        v["n"] += 1
        return v

    assert kv.mutate("counter", bump, default={"n": 0}) == {"n": 11}
    assert calls == [{"n": 0}, {"n": 10}]
    assert kv.get("counter") == {"n": 11}
