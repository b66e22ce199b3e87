def test_note_lifecycle(client, alice):
    created = client.post("/notes", json={"content": "  remember the milk  "}, headers=alice)
    assert created.status_code == 201
    note = created.json()["data"]
    assert note["content"] == "remember the milk"
    assert note["user_id"] == "user-a"
    assert set(note) == {"id", "user_id", "content", "created_at"}

    fetched = client.get(f"/notes/{note['id']}", headers=alice)
    assert fetched.json() == {"success": True, "data": note}

    updated = client.patch(f"/notes/{note['id']}", json={"content": "bought it"}, headers=alice)
    assert updated.status_code == 200
    assert updated.json()["data"]["content"] == "bought it"
    assert updated.json()["data"]["created_at"] == note["created_at"]

    deleted = client.delete(f"/notes/{note['id']}", headers=alice)
    assert deleted.json() == {"success": True, "message": "Note deleted successfully"}
    assert client.get(f"/notes/{note['id']}", headers=alice).status_code == 404


def test_note_content_boundaries(client, alice):
    assert client.post("/notes", json={"content": "c" * 10000}, headers=alice).status_code == 201
    assert client.post("/notes", json={"content": "c" * 10001}, headers=alice).status_code == 400
    assert client.post("/notes", json={"content": " \n "}, headers=alice).status_code == 400
    missing = client.post("/notes", json={}, headers=alice)
    assert missing.status_code == 400
    assert missing.json()["message"] == "Content is required"


def test_note_patch_requires_content(client, alice):
    note = client.post("/notes", json={"content": "keep"}, headers=alice).json()["data"]
    response = client.patch(f"/notes/{note['id']}", json={"title": "wrong field"}, headers=alice)
    assert response.status_code == 400
    assert response.json()["message"] == "No valid fields to update"
    assert client.get(f"/notes/{note['id']}", headers=alice).json()["data"]["content"] == "keep"


def test_notes_are_isolated_per_owner(client, alice, bob):
    note = client.post("/notes", json={"content": "alice only", "user_id": "user-b"}, headers=alice).json()["data"]
    assert note["user_id"] == "user-a"

    assert client.get("/notes", headers=bob).json()["count"] == 0
    assert client.get(f"/notes/{note['id']}", headers=bob).status_code == 404
    assert client.patch(f"/notes/{note['id']}", json={"content": "mine now"}, headers=bob).status_code == 404
    assert client.delete(f"/notes/{note['id']}", headers=bob).status_code == 404
    assert client.get(f"/notes/{note['id']}", headers=alice).json()["data"]["content"] == "alice only"


def test_tasks_and_notes_do_not_mix(client, alice):
    task = client.post("/tasks", json={"title": "a task"}, headers=alice).json()["data"]
    assert client.get(f"/notes/{task['id']}", headers=alice).status_code == 404
    assert client.get("/notes", headers=alice).json()["count"] == 0


def test_notes_newest_first(client, alice):
    for content in ("one", "two", "three"):
        client.post("/notes", json={"content": content}, headers=alice)
    body = client.get("/notes", headers=alice).json()
    assert [n["content"] for n in body["data"]] == ["three", "two", "one"]
    assert body["count"] == 3
