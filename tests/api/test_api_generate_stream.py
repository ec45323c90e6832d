import json

from bookbag.api import abort_registry
from bookbag.api.sse import parse_events
from core import metrics


def _frames(body: str):
    return [(ev, json.loads(data)) for ev, data in parse_events(body)]


def _generate(client, **extra):
    payload = {"session_id": "chat-1", "model": "fake", "prompt": "Hi"}
    payload.update(extra)
    return client.post("/generate", json=payload)


def test_stream_without_rules_is_plain_response(make_client, fake_provider):
    client, _ = make_client(fake_provider(["Hello ", "world"]))
    r = _generate(client)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")
    frames = _frames(r.text)
    assert frames[0][0] == "meta"
    assert frames[0][1]["rules_mode"] == "none"
    tokens = [f for ev, f in frames if ev == "token"]
    assert [t["text"] for t in tokens] == ["Hello ", "world"]
    assert tokens[-1]["response_buffer"] == "Hello world"
    assert tokens[-1]["token_count"] == 3
    end = frames[-1]
    assert end[0] == "end" and end[1]["status"] == "ok"
    assert end[1]["response"] == "Hello world"
    assert end[1]["thinking_sections"] == 0
    assert end[1]["tps_formatted"].endswith("t/s")
    assert "rating" in end[1]


def test_stream_end_only_rule_persists_thinking(make_client, fake_provider):
    client, app = make_client(
        fake_provider(["Let me ", "think</think>", "Answer: 4"])
    )
    app.state.rule_store.add("fake", end_word="</think>")
    r = _generate(client, message_id="msg-7")
    frames = _frames(r.text)
    thinking = [f for ev, f in frames if ev == "thinking"]
    assert len(thinking) == 1
    assert thinking[0]["section_id"] == 0
    assert thinking[0]["thinking_delta"] == "Let me think</think>"
    assert thinking[0]["thinking_end_time"] >= thinking[0]["thinking_start_time"]
    end = frames[-1][1]
    assert end["response"] == "Answer: 4"
    assert end["thinking_sections"] == 1

    stored = client.get("/thinking/message/msg-7").json()["sections"]
    assert [s["content"] for s in stored] == ["Let me think</think>"]
    assert stored[0]["tokens_used"] == 0
    by_chat = client.get("/thinking/chat/chat-1").json()["sections"]
    assert list(by_chat) == ["msg-7"]


def test_stream_dual_markers(make_client, fake_provider):
    client, app = make_client(
        fake_provider(["Sure. <think>", "plan", "</think> Done"])
    )
    app.state.rule_store.add("fake", end_word="</think>", start_word="<think>")
    frames = _frames(_generate(client).text)
    assert frames[0][1]["rules_mode"] == "dual"
    thinking = [f for ev, f in frames if ev == "thinking"]
    assert thinking[0]["thinking_delta"] == "<think>plan</think>"
    assert frames[-1][1]["response"] == "Sure.  Done"


def test_stream_records_tps_sample(make_client, fake_provider):
    client, app = make_client(fake_provider(["abcd"] * 4, delay_s=0.01))
    _generate(client, message_id="msg-tps", user_id="u1")
    sample = app.state.tps_store.get("msg-tps")
    assert sample is not None
    assert sample.chat_id == "chat-1" and sample.user_id == "u1"
    assert sample.token_count == 4
    assert sample.tokens_per_second > 0
    hist = metrics.snapshot()["histograms"]
    assert "generation_tps{model=fake}" in hist


def test_abort_mid_stream_persists_nothing(make_client, fake_provider):
    def _abort_all(i):
        if i == 2:
            for rid in abort_registry.active():
                abort_registry.abort(rid)

    client, app = make_client(
        fake_provider(["thinking ", "more ", "</think>", "answer"],
                     before_chunk=_abort_all)
    )
    app.state.rule_store.add("fake", end_word="</think>")
    frames = _frames(_generate(client, message_id="msg-ab").text)
    end = frames[-1][1]
    assert end["status"] == "cancelled"
    assert end["reason"] == "user_abort"
    assert end["thinking_sections"] == 0
    assert not [f for ev, f in frames if ev == "thinking"]
    assert client.get("/thinking/message/msg-ab").json()["sections"] == []
    assert abort_registry.active() == []
    counters = metrics.snapshot()["counters"]
    assert counters[
        "generation_cancelled_total{model=fake,reason=user_abort}"
    ] == 1


def test_provider_failure_yields_error_frame(make_client, fake_provider):
    client, _ = make_client(fake_provider(["a", "b", "c"], fail_at=1))
    frames = _frames(_generate(client).text)
    events = [ev for ev, _ in frames]
    assert events[-2:] == ["error", "end"]
    assert frames[-2][1]["error_type"] == "provider-error"
    assert frames[-1][1]["status"] == "error"


def test_unknown_model_and_empty_prompt(make_client, fake_provider):
    client, _ = make_client(fake_provider(["x"]))
    r = client.post(
        "/generate", json={"session_id": "s", "model": "nope", "prompt": "Hi"}
    )
    assert r.status_code == 404
    assert r.json()["detail"]["error_type"] == "unknown-model"
    r = client.post(
        "/generate", json={"session_id": "s", "model": "fake", "prompt": "  "}
    )
    assert r.status_code == 400


def test_max_output_tokens_forwarded(make_client, fake_provider):
    provider = fake_provider(["x"])
    client, _ = make_client(provider)
    _generate(client, max_output_tokens=7)
    assert provider.prompts[0][1]["max_tokens"] == 7


def test_abort_endpoint_unknown_and_missing(make_client):
    client, _ = make_client()
    assert client.post("/generate/abort", json={}).json() == {
        "ok": False,
        "error": "missing-request_id",
    }
    body = client.post("/generate/abort", json={"request_id": "zzz"}).json()
    assert body == {"ok": False, "request_id": "zzz"}
