import time

import pytest

from core.tps import TPSSample


def test_calculate_endpoint(make_client):
    client, _ = make_client()
    body = client.post(
        "/tps/calculate", json={"token_count": 100, "duration_ms": 2000}
    ).json()
    assert body["tokens_per_second"] == 50.0
    assert body["formatted"] == "50 t/s"
    assert body["rating"]["rating"] == "excellent"
    body = client.post(
        "/tps/calculate",
        json={"token_count": 30, "start_time": 1000, "end_time": 4000},
    ).json()
    assert body["tokens_per_second"] == 10.0
    body = client.post("/tps/calculate", json={"token_count": "x"}).json()
    assert body["formatted"] == "0.0 t/s"


def test_update_endpoint_validation(make_client):
    client, app = make_client()
    app.state.tps_store.record(TPSSample("m1", 5.0, model_id="fake"))
    r = client.post("/tps/update", json={"tokens_per_second": 3})
    assert r.status_code == 400
    r = client.post(
        "/tps/update", json={"message_id": "m1", "tokens_per_second": -1}
    )
    assert r.status_code == 400
    assert r.json()["detail"]["error_type"] == "invalid-tps-input"
    r = client.post(
        "/tps/update", json={"message_id": "m1", "tokens_per_second": "7"}
    )
    assert r.status_code == 400
    r = client.post(
        "/tps/update", json={"message_id": "nope", "tokens_per_second": 3}
    )
    assert r.status_code == 404
    r = client.post(
        "/tps/update", json={"message_id": "m1", "tokens_per_second": 12.5}
    )
    assert r.json()["tokens_per_second"] == 12.5
    assert app.state.tps_store.get("m1").tokens_per_second == 12.5


def test_update_endpoint_rejects_infinity(make_client):
    client, app = make_client()
    app.state.tps_store.record(TPSSample("m1", 5.0, model_id="fake"))
    for literal in ("Infinity", "-Infinity", "NaN"):
        r = client.post(
            "/tps/update",
            content='{"message_id": "m1", "tokens_per_second": ' + literal + "}",
            headers={"content-type": "application/json"},
        )
        assert r.status_code == 400
        assert r.json()["detail"]["error_type"] == "invalid-tps-input"
    assert app.state.tps_store.get("m1").tokens_per_second == 5.0
    with pytest.raises(ValueError):
        app.state.tps_store.update_message_tps("m1", float("inf"))


def test_chat_stats(make_client):
    client, app = make_client()
    store = app.state.tps_store
    now = time.time()
    for i, tps in enumerate([10.0, 20.0, 30.0, 0.0]):
        store.record(
            TPSSample(f"m{i}", tps, token_count=10, generation_time_ms=1000,
                      model_id="fake", chat_id="c1", created_at=now + i)
        )
    store.record(TPSSample("u", 99.0, chat_id="c1", role="user",
                           created_at=now))
    body = client.get("/tps/chat/c1").json()
    assert body["stats"]["message_count"] == 3
    assert body["stats"]["median_tps"] == 20.0
    # newest first
    assert [m["message_id"] for m in body["messages"]] == ["m2", "m1", "m0"]
    limited = client.get("/tps/chat/c1", params={"limit": 1}).json()
    assert limited["stats"]["message_count"] == 1
    none = client.get("/tps/chat/c1", params={"limit": 0}).json()
    assert none["stats"]["message_count"] == 0
    assert none["messages"] == []


def test_user_stats_filters(make_client):
    client, app = make_client()
    store = app.state.tps_store
    now = time.time()
    store.record(TPSSample("a", 10.0, token_count=5, model_id="m1",
                           user_id="u1", created_at=now))
    store.record(TPSSample("b", 30.0, token_count=7, model_id="m2",
                           user_id="u1", created_at=now))
    store.record(TPSSample("old", 50.0, model_id="m1", user_id="u1",
                           created_at=now - 40 * 24 * 3600))
    stats = client.get("/tps/user/u1").json()["stats"]
    assert stats["message_count"] == 2
    assert stats["average_tps"] == 20.0
    assert {m["model_id"] for m in stats["models_used"]} == {"m1", "m2"}
    only_m1 = client.get("/tps/user/u1", params={"model_id": "m1"}).json()
    assert only_m1["stats"]["message_count"] == 1
    wide = client.get("/tps/user/u1", params={"days_back": 60}).json()
    assert wide["stats"]["message_count"] == 3
    no_rows = client.get("/tps/user/u1", params={"limit": 0}).json()
    assert no_rows["stats"]["message_count"] == 0
    zero_days = client.get("/tps/user/u1", params={"days_back": 0}).json()
    assert zero_days["stats"]["message_count"] == 0
