def _create(client, **overrides):
    body = {
        "message_id": "m1",
        "section_id": 0,
        "content": "pondering",
        "start_time": 1_000,
        "end_time": 2_500,
        "tokens_used": 12,
        "chat_id": "c1",
    }
    body.update(overrides)
    return client.post("/thinking", json=body)


def test_create_and_read_by_message(make_client):
    client, _ = make_client()
    r = _create(client)
    assert r.status_code == 201
    rec = r.json()["thinking"]
    assert rec["duration_ms"] == 1_500
    assert rec["duration_seconds"] == 2
    _create(client, section_id=1, content="second")
    sections = client.get("/thinking/message/m1").json()["sections"]
    assert [s["section_id"] for s in sections] == [0, 1]


def test_section_zero_is_valid_and_missing_fields_rejected(make_client):
    client, _ = make_client()
    assert _create(client, section_id=0).status_code == 201
    r = _create(client, content="", section_id=None)
    assert r.status_code == 400
    assert "section_id" in r.json()["detail"]
    assert "content" in r.json()["detail"]


def test_read_by_chat_groups_messages(make_client):
    client, _ = make_client()
    _create(client, message_id="m2", chat_id="c9")
    _create(client, message_id="m1", chat_id="c9")
    _create(client, message_id="m3", chat_id="other")
    grouped = client.get("/thinking/chat/c9").json()["sections"]
    assert sorted(grouped) == ["m1", "m2"]
    assert client.get("/thinking/chat/empty").json()["sections"] == {}


def test_read_by_chat_orders_messages_by_creation(make_client):
    client, _ = make_client()
    for mid in ("zeta", "alpha", "mid"):
        _create(client, message_id=mid, chat_id="c7")
    grouped = client.get("/thinking/chat/c7").json()["sections"]
    assert list(grouped) == ["zeta", "alpha", "mid"]


def test_update_section(make_client):
    client, _ = make_client()
    rec = _create(client).json()["thinking"]
    r = client.put(
        f"/thinking/{rec['id']}",
        json={"content": "revised", "end_time": 500, "tokens_used": 40},
    )
    updated = r.json()["thinking"]
    assert updated["content"] == "revised"
    assert updated["tokens_used"] == 40
    # end before start clamps to start
    assert updated["end_time"] == updated["start_time"]
    assert client.put("/thinking/999", json={}).status_code == 404
