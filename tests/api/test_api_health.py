def test_health_config_models_metrics(make_client):
    client, _ = make_client()
    assert client.get("/health").json() == {"status": "ok"}
    cfg = client.get("/config").json()
    assert cfg["thinking"]["tail_window_chars"] <= 128
    assert client.get("/models").json() == {"models": []}
    counters = client.get("/metrics").json()["counters"]
    assert any(k.startswith("api_request_total") for k in counters)


def test_metrics_endpoint_can_be_disabled(make_client, monkeypatch):
    monkeypatch.setenv("BOOKBAG__METRICS__EXPOSE_ENDPOINT", "false")
    client, _ = make_client()
    assert client.get("/metrics").status_code == 404
