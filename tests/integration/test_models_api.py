def headers_for(user: str):
    return {"x-auth-request-user": user, "x-auth-request-email": f"{user}@example.com"}


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_list_models_with_and_without_slash(client):
    for path in ("/models", "/models/"):
        r = client.get(path)
        assert r.status_code == 200, r.text
        assert "users" in r.json()


def test_get_model_config(client):
    r = client.get("/models/users")
    assert r.status_code == 200
    body = r.json()
    assert body["alias"] == "u"
    assert body["kvs"]["default"]["value_fields"] == ["name"]


def test_unknown_model_is_404(client):
    r = client.get("/models/ghost/records")
    assert r.status_code == 404
    assert "ghost" in r.json()["detail"]


def test_invalid_model_is_500(client, config_dir):
    (config_dir / "broken.json").write_text('{"title": "no table"}', encoding="utf-8")
    r = client.get("/models/broken/records")
    assert r.status_code == 500
    assert "invalid" in r.json()["detail"]


def test_kvs_endpoint(client):
    r = client.get("/models/regions/kvs", params={"return_path": "true", "indent": "-"})
    assert r.status_code == 200
    body = r.json()
    assert body["model"] == "regions"
    assert body["kv"] == "default"
    assert [i["key"] for i in body["items"]] == ["01", "0101", "010101", "02"]
    assert body["items"][2]["value"] == "--Hangzhou"
    assert body["items"][2]["level"] == 3
    assert body["items"][2]["row"] == {"path": "010101", "depth": 3}


def test_kvs_extra_fields_and_missing_kv(client):
    r = client.get("/models/users/kvs", params={"kv": "contact", "extra_fields": "email,status"})
    assert r.status_code == 200
    first = r.json()["items"][0]
    assert first["value"] == "Alice - alice@example.com"
    assert first["row"] == {"email": "alice@example.com", "status": 1}
    r = client.get("/models/users/kvs", params={"kv": "nope"})
    assert r.status_code == 404
    assert r.json()["detail"] == "KV config [nope] does not exist in model users"


def test_records_paging_and_search(client):
    r = client.get("/models/users/records", params={"page": 1, "page_size": 2})
    body = r.json()
    assert body["total"] == 3
    assert body["page_size"] == 2
    assert [i["name"] for i in body["items"]] == ["Alice", "Bob"]

    r = client.get("/models/users/records", params={"status": "1", "name": "ar"})
    assert [i["name"] for i in r.json()["items"]] == ["Carol"]


def test_records_order_by_sortable_field(client):
    r = client.get("/models/users/records", params={"order": "-name"})
    assert [i["name"] for i in r.json()["items"]] == ["Carol", "Bob", "Alice"]
    r = client.get("/models/users/records", params={"order": "email"})
    assert r.status_code == 400


def test_get_record(client):
    assert client.get("/models/users/records/2").json()["name"] == "Bob"
    assert client.get("/models/users/records/42").status_code == 404


def test_create_update_delete_cycle(client):
    r = client.post("/models/users/records", json={"name": "Dave", "email": "dave@example.com"})
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["code"] == 0
    new_id = body["id"]

    r = client.post("/models/users/records", json={"name": "Dup", "email": "dave@example.com"})
    assert r.status_code == 409

    r = client.put(f"/models/users/records/{new_id}", json={"name": "David"})
    assert r.status_code == 200
    assert r.json()["affected"] == 1
    assert client.get(f"/models/users/records/{new_id}").json()["name"] == "David"

    assert client.put("/models/users/records/999", json={"name": "x"}).status_code == 404

    r = client.delete("/models/users/records", params=[("id", new_id), ("id", 1)])
    assert r.status_code == 200
    assert r.json() == {"code": 0, "msg": "Records deleted", "id": None, "affected": 2}
    assert client.delete("/models/users/records").status_code == 400


def test_read_only_model_rejects_writes(client):
    assert client.post("/models/active_users/records", json={"name": "x"}).status_code == 405
    assert client.delete("/models/active_users/records", params={"id": 1}).status_code == 405
    assert client.get("/models/active_users/records").json()["total"] == 2


def test_row_auth_uses_identity_headers(client):
    r = client.get("/models/notes/records", headers=headers_for("alice"))
    assert [i["id"] for i in r.json()["items"]] == [1, 3]
    assert client.get("/models/notes/records").json()["total"] == 0
    assert client.get("/models/notes/records/2", headers=headers_for("alice")).status_code == 404
    r = client.put("/models/notes/records/2", json={"title": "mine"}, headers=headers_for("alice"))
    assert r.status_code == 404


def test_admins_bypass_row_auth(client, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "root@example.com")
    r = client.get("/models/notes/records", headers=headers_for("root"))
    assert r.json()["total"] == 3
    assert len(client.get("/models/notes/kvs", headers=headers_for("root")).json()["items"]) == 3


def test_delete_only_touches_visible_rows(client):
    alice = headers_for("alice")
    assert client.get("/models/notes/records/2", headers=alice).status_code == 404
    r = client.delete("/models/notes/records", params=[("id", 2), ("id", 3)], headers=alice)
    assert r.status_code == 200
    assert r.json()["affected"] == 1
    assert client.get("/models/notes/records/2", headers=headers_for("bob")).json()["title"] == "bob note"
    assert client.get("/models/notes/records/3", headers=alice).status_code == 404


def test_delete_of_unknown_ids_affects_nothing(client):
    r = client.delete("/models/users/records", params={"id": 99})
    assert r.json()["affected"] == 0
