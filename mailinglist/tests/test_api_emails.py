from mailinglist.db import get_conn


def test_health_and_version(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json().get("status") == "ok"

    v = client.get("/version")
    assert v.status_code == 200
    assert v.json().get("app") == "mailinglist-api"


def test_create_then_get(client):
    res = client.post("/email/create", json={"email": "a@x.com"})
    assert res.status_code == 201
    assert res.json().get("message") == "ok"

    got = client.get("/email/get", params={"email": "a@x.com"})
    assert got.status_code == 200
    body = got.json()
    assert body["email"] == "a@x.com"
    assert body["opt_out"] is False
    assert body["confirmed_at"].startswith("1970-01-01T00:00:00")


def test_create_duplicate_is_409(client):
    assert client.post("/email/create", json={"email": "a@x.com"}).status_code == 201
    res = client.post("/email/create", json={"email": "a@x.com"})
    assert res.status_code == 409
    assert res.json()["detail"] == "already_subscribed"

    with get_conn() as conn:
        n = conn.execute("SELECT COUNT(1) FROM emails WHERE email='a@x.com'").fetchone()[0]
    assert n == 1


def test_create_invalid_is_400(client):
    assert client.post("/email/create", json={"email": "nope"}).status_code == 400


def test_get_missing_is_404(client):
    assert client.get("/email/get", params={"email": "nobody@x.com"}).status_code == 404


def test_update_inserts_then_updates(client):
    r1 = client.post("/email/update", json={"email": "b@x.com", "confirmed_at": 1700000000, "opt_out": False})
    assert r1.status_code == 200
    first = r1.json()
    assert first["confirmed_at"].startswith("2023-11-14T22:13:20")

    r2 = client.post(
        "/email/update",
        json={"email": "b@x.com", "confirmed_at": "2024-02-01T09:30:00Z", "opt_out": True},
    )
    assert r2.status_code == 200
    second = r2.json()
    assert second["id"] == first["id"]
    assert second["opt_out"] is True
    assert second["confirmed_at"].startswith("2024-02-01T09:30:00")


def test_delete_is_soft(client):
    client.post("/email/create", json={"email": "a@x.com"})
    client.post("/email/create", json={"email": "b@x.com"})

    res = client.post("/email/delete", json={"email": "b@x.com"})
    assert res.status_code == 200
    assert res.json()["opt_out"] is True

    assert client.get("/email/get", params={"email": "b@x.com"}).json()["opt_out"] is True
    items = client.get("/email/get_batch", params={"page": 1, "count": 10}).json()["items"]
    assert [i["email"] for i in items] == ["a@x.com"]


def test_delete_unknown_returns_null(client):
    res = client.post("/email/delete", json={"email": "ghost@x.com"})
    assert res.status_code == 200
    assert res.json() is None


def test_get_batch_pages(client):
    for i in range(1, 26):
        client.post("/email/create", json={"email": f"user{i:02d}@x.com"})

    p1 = client.get("/email/get_batch", params={"page": 1, "count": 10}).json()["items"]
    assert [i["email"] for i in p1] == [f"user{i:02d}@x.com" for i in range(1, 11)]
    p3 = client.get("/email/get_batch", params={"page": 3, "count": 10}).json()["items"]
    assert len(p3) == 5
    p4 = client.get("/email/get_batch", params={"page": 4, "count": 10}).json()["items"]
    assert p4 == []


def test_get_batch_bad_params_is_400(client):
    assert client.get("/email/get_batch", params={"page": 0, "count": 10}).status_code == 400
    assert client.get("/email/get_batch", params={"page": 1, "count": -1}).status_code == 400


def test_writes_are_audited(client):
    client.post("/email/create", json={"email": "a@x.com"})
    client.post("/email/create", json={"email": "a@x.com"})
    client.post("/email/delete", json={"email": "a@x.com"})

    res = client.get("/api/logs/search", params={"query": "a@x.com"}).json()
    assert res["total"] == 3
    actions = [(i["action"], i["result"]) for i in res["items"]]
    assert actions == [
        ("EMAIL_OPT_OUT", "OK"),
        ("EMAIL_CREATE", "ERROR"),
        ("EMAIL_CREATE", "OK"),
    ]
    only_errors = client.get("/api/logs/search", params={"action": "EMAIL_CREATE", "size": 1}).json()
    assert only_errors["total"] == 2
    assert len(only_errors["items"]) == 1


def test_get_batch_huge_page_is_empty(client):
    client.post("/email/create", json={"email": "a@x.com"})
    res = client.get("/email/get_batch", params={"page": 2 ** 62, "count": 10})
    assert res.status_code == 200
    assert res.json() == {"items": []}
