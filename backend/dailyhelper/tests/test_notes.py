import pytest


PROTECTED = [
    ("get", "/api/notes"),
    ("post", "/api/notes"),
    ("get", "/api/notes/1"),
    ("put", "/api/notes/1"),
    ("patch", "/api/notes/1"),
    ("delete", "/api/notes/1"),
]


@pytest.mark.parametrize("method,path", PROTECTED)
def test_notes_require_bearer_token(client, register, method, path):
    owner = register("owner")
    client.post('/api/notes', json={"title": "t", "body": "b"}, headers=owner)
    kwargs = {"json": {"title": "x"}} if method in ("post", "put", "patch") else {}

    r = getattr(client, method)(path, **kwargs)
    assert r.status_code == 401
    assert r.json()["code"] == "AUTHENTICATION_FAILED"

    r = getattr(client, method)(path, headers={"Authorization": "Bearer abc.def.ghi"}, **kwargs)
    assert r.status_code == 401


def test_create_then_read_round_trip(client, register):
    headers = register("alice")
    r = client.post('/api/notes', json={"title": "Shopping", "body": "Buy milk"}, headers=headers)
    assert r.status_code == 201, r.text
    created = r.json()

    r = client.get(f"/api/notes/{created['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json() == created
    assert created["body"] == "Buy milk"
    assert created["created_at"] == created["updated_at"]


def test_list_is_ordered_and_paginated(client, register):
    headers = register("alice")
    for i in range(5):
        client.post('/api/notes', json={"title": f"n{i}"}, headers=headers)

    r = client.get('/api/notes?limit=2&offset=1', headers=headers)
    assert r.status_code == 200
    data = r.json()
    assert [n["title"] for n in data["items"]] == ["n1", "n2"]
    assert data["total"] == 5
    assert data["has_more"] is True

    last = client.get('/api/notes?limit=2&offset=4', headers=headers).json()
    assert last["has_more"] is False


def test_update_patch_and_delete(client, register):
    headers = register("alice")
    note = client.post('/api/notes', json={"title": "draft", "body": "v1"}, headers=headers).json()

    r = client.put(f"/api/notes/{note['id']}", json={"title": "final", "body": "v2"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["title"] == "final"
    assert r.json()["created_at"] == note["created_at"]
    assert r.json()["updated_at"] >= note["updated_at"]

    r = client.patch(f"/api/notes/{note['id']}", json={"body": "v3"}, headers=headers)
    assert r.json()["title"] == "final"
    assert r.json()["body"] == "v3"

    r = client.delete(f"/api/notes/{note['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json() == {"deleted": note["id"]}
    assert client.get(f"/api/notes/{note['id']}", headers=headers).status_code == 404
    assert client.delete(f"/api/notes/{note['id']}", headers=headers).status_code == 404


def test_missing_note(client, register):
    headers = register("alice")
    r = client.put('/api/notes/999', json={"title": "x"}, headers=headers)
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


def test_malformed_note_rejected(client, register):
    headers = register("alice")
    assert client.post('/api/notes', json={"body": "no title"}, headers=headers).status_code == 400
    r = client.post('/api/notes', json={"title": "   "}, headers=headers)
    assert r.status_code == 400
    assert r.json()["details"]["errors"]
    r = client.post('/api/notes', content="not json", headers={**headers, "Content-Type": "application/json"})
    assert r.status_code == 400


def test_notes_are_scoped_to_their_owner(client, register):
    alice = register("alice")
    bob = register("bob")
    note = client.post('/api/notes', json={"title": "private", "body": "alice only"}, headers=alice).json()
    client.post('/api/notes', json={"title": "bob's"}, headers=bob)

    listing = client.get('/api/notes', headers=bob).json()
    assert [n["title"] for n in listing["items"]] == ["bob's"]
    assert listing["total"] == 1

    assert client.get(f"/api/notes/{note['id']}", headers=bob).status_code == 404
    assert client.put(f"/api/notes/{note['id']}", json={"title": "hijack"}, headers=bob).status_code == 404
    assert client.delete(f"/api/notes/{note['id']}", headers=bob).status_code == 404
    assert client.get(f"/api/notes/{note['id']}", headers=alice).json()["title"] == "private"
