from __future__ import annotations

from fastapi.testclient import TestClient


def make_client(monkeypatch, service, token=None):
    import decision_coach.web.app as web_app

    monkeypatch.setattr(web_app, "API_TOKEN", token)
    monkeypatch.setattr(web_app, "_get_service", lambda: service)
    return TestClient(web_app.app)


def _stream(client, payload):
    resp = client.post("/chat/stream", json=payload)
    assert resp.status_code == 200
    return resp.text


def test_health(monkeypatch, make_service):
    with make_client(monkeypatch, make_service()) as client:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


def test_bearer_token_required_when_configured(monkeypatch, make_service):
    with make_client(monkeypatch, make_service(), token="secret") as client:
        assert client.get("/health").status_code == 401
        assert client.get("/health", headers={"Authorization": "Bearer wrong"}).status_code == 401
        assert client.get("/health", headers={"Authorization": "Bearer secret"}).status_code == 200


def test_backend_and_tools(monkeypatch, make_service):
    with make_client(monkeypatch, make_service()) as client:
        backend = client.get("/backend").json()
        assert backend["available"] is True
        assert backend["models"] == ["gemma3:1b", "llama3.2:3b"]

        tools = client.get("/tools").json()["tools"]
        assert [tool["id"] for tool in tools] == [
            "pattern-detective",
            "calibration-coach",
            "pre-mortem",
            "bias-detector",
        ]
        assert "premortem" in tools[2]["shortcuts"]


def test_chat_stream(monkeypatch, make_service, chat_db):
    with make_client(monkeypatch, make_service()) as client:
        body = _stream(client, {"message": "Should I move abroad?"})
        assert "event: session" in body
        assert "event: message" in body
        assert "Hello there" in body
        assert "event: result" in body
        assert '"status": "completed"' in body
        assert body.rstrip().endswith("event: done\ndata: {}")

        sessions = client.get("/sessions").json()["sessions"]
        assert len(sessions) == 1
        assert sessions[0]["title"] == "Should I move abroad?"
        assert sessions[0]["message_count"] == 2

        messages = client.get(f"/sessions/{sessions[0]['id']}/messages").json()["messages"]
        assert [m["role"] for m in messages] == ["user", "assistant"]


def test_chat_stream_unknown_session(monkeypatch, make_service):
    with make_client(monkeypatch, make_service()) as client:
        body = _stream(client, {"message": "hi", "session_id": "missing"})
        assert "event: error" in body
        assert "event: result" not in body
        assert "event: done" in body


def test_rename_search_and_delete(monkeypatch, make_service):
    with make_client(monkeypatch, make_service()) as client:
        _stream(client, {"message": "Buy or rent?"})
        session_id = client.get("/sessions").json()["sessions"][0]["id"]

        assert client.patch(f"/sessions/{session_id}", json={"title": "   "}).status_code == 400
        resp = client.patch(f"/sessions/{session_id}", json={"title": " Housing "})
        assert resp.json() == {"session_id": session_id, "title": "Housing"}
        found = client.get("/sessions", params={"q": "housing"}).json()["sessions"]
        assert [s["id"] for s in found] == [session_id]

        assert client.delete(f"/sessions/{session_id}").json() == {"deleted": session_id}
        assert client.get("/sessions").json()["sessions"] == []
        assert client.get(f"/sessions/{session_id}/messages").status_code == 404


def test_tool_run_validation_and_unknown_tool(monkeypatch, make_service):
    with make_client(monkeypatch, make_service()) as client:
        assert client.post("/tools/nope/run", json={}).status_code == 404

        resp = client.post("/tools/pattern-detective/run", json={"values": {"query": "ab"}})
        assert resp.status_code == 422
        assert "query" in resp.json()["detail"]


def test_tool_run_returns_result(monkeypatch, make_service):
    service = make_service()
    with make_client(monkeypatch, service) as client:
        resp = client.post("/tools/pattern-detective/run", json={"values": {"query": "career moves"}})
        assert resp.status_code == 200
        message = resp.json()["message"]
        assert message["role"] == "tool-result"
        assert message["tool_execution"]["tool_id"] == "pattern-detective"
        assert "No similar decisions found" in message["content"]
