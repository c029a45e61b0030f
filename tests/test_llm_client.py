"""Tests for the Ollama client using a fake requests session."""

from __future__ import annotations

import asyncio
import json
import threading

import pytest
import requests

from decision_coach.config import LLMConfig
from decision_coach.llm_client import (
    BackendUnavailableError,
    CancelToken,
    ChatMessage,
    OllamaClient,
    StreamCancelled,
    StreamError,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, lines=(), gate=None):
        self.status_code = status_code
        self._payload = payload or {}
        self._lines = list(lines)
        self.text = json.dumps(self._payload)
        self.gate = gate
        self.closed = False

    def json(self):
        return self._payload

    def iter_lines(self, decode_unicode=False):
        for line in self._lines:
            yield line
            if self.gate is not None:
                self.gate.wait(timeout=2)

    def close(self):
        self.closed = True
        if self.gate is not None:
            self.gate.set()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, timeout=None):
        return self.request("GET", url, timeout=timeout)

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response


def _line(content="", done=False, **extra):
    return json.dumps({"message": {"role": "assistant", "content": content}, "done": done, **extra})


def _client(session):
    return OllamaClient(LLMConfig(base_url="http://ollama.test/", model="gemma3:1b"), session=session)


def _stream(client, token=None, on_chunk=None):
    chunks, completed, errors = [], [], []

    def handle_chunk(text):
        chunks.append(text)
        if on_chunk is not None:
            on_chunk(text)

    asyncio.run(
        client.stream_chat(
            [ChatMessage(role="user", content="hi")],
            handle_chunk,
            lambda: completed.append(True),
            errors.append,
            cancel_token=token,
        )
    )
    return chunks, completed, errors


def test_ping_reports_connection_errors_as_false():
    assert _client(FakeSession(FakeResponse(200))).ping() is True
    assert _client(FakeSession(FakeResponse(500))).ping() is False
    assert _client(FakeSession(error=requests.exceptions.ConnectionError("refused"))).ping() is False


def test_list_models_and_default_model():
    payload = {"models": [{"name": "llama3.2:3b"}, {"name": ""}, {"name": "mistral"}]}
    client = _client(FakeSession(FakeResponse(200, payload)))
    assert client.list_models() == ["llama3.2:3b", "mistral"]
    assert client.default_model() == "llama3.2:3b"

    offline = _client(FakeSession(error=requests.exceptions.ConnectionError("refused")))
    with pytest.raises(BackendUnavailableError):
        offline.list_models()
    assert offline.default_model() == "gemma3:1b"


def test_chat_returns_stripped_content_and_sends_options():
    session = FakeSession(FakeResponse(200, {"message": {"content": "  Consider the downside.  "}}))
    client = _client(session)

    reply = client.chat([ChatMessage(role="user", content="hi")], options={"temperature": 0.1})
    assert reply == "Consider the downside."
    sent = session.requests[0]
    assert sent["url"] == "http://ollama.test/api/chat"
    assert sent["json"]["stream"] is False
    assert sent["json"]["options"]["temperature"] == 0.1
    assert sent["json"]["options"]["top_p"] == 0.9


def test_chat_rejects_non_200_and_odd_payloads():
    with pytest.raises(BackendUnavailableError, match="Ollama returned 404"):
        _client(FakeSession(FakeResponse(404, {"error": "model not found"}))).chat([])
    with pytest.raises(StreamError):
        _client(FakeSession(FakeResponse(200, {"unexpected": True}))).chat([])


def test_stream_delivers_chunks_then_completes():
    lines = [_line("Hel"), "", _line("lo"), _line("", done=True)]
    session = FakeSession(FakeResponse(200, lines=lines))

    chunks, completed, errors = _stream(_client(session))
    assert chunks == ["Hel", "lo"]
    assert completed == [True]
    assert errors == []
    assert session.requests[0]["stream"] is True
    assert session.requests[0]["json"]["model"] == "gemma3:1b"


def test_stream_error_line_fails_after_partial_output():
    lines = [_line("Half"), json.dumps({"error": "out of memory"})]
    chunks, completed, errors = _stream(_client(FakeSession(FakeResponse(200, lines=lines))))
    assert chunks == ["Half"]
    assert completed == []
    assert len(errors) == 1
    assert isinstance(errors[0], StreamError)
    assert "out of memory" in str(errors[0])


def test_stream_without_done_marker_is_an_error():
    chunks, completed, errors = _stream(_client(FakeSession(FakeResponse(200, lines=[_line("cut")]))))
    assert chunks == ["cut"]
    assert completed == []
    assert isinstance(errors[0], StreamError)


def test_stream_connection_error_goes_to_on_error():
    session = FakeSession(error=requests.exceptions.ConnectionError("refused"))
    chunks, completed, errors = _stream(_client(session))
    assert chunks == []
    assert completed == []
    assert isinstance(errors[0], BackendUnavailableError)
    assert "Could not connect to Ollama" in str(errors[0])


def test_cancel_stops_delivery_and_closes_response():
    gate = threading.Event()
    response = FakeResponse(200, lines=[_line("Hel"), _line("lo"), _line("", done=True)], gate=gate)
    token = CancelToken()

    chunks, completed, errors = _stream(_client(FakeSession(response)), token, on_chunk=lambda _: token.abort())
    assert chunks == ["Hel"]
    assert completed == []
    assert len(errors) == 1
    assert isinstance(errors[0], StreamCancelled)
    assert response.closed


def test_already_cancelled_token_never_sends():
    session = FakeSession(FakeResponse(200, lines=[_line("x", done=True)]))
    token = CancelToken()
    token.abort()

    chunks, completed, errors = _stream(_client(session), token)
    assert session.requests == []
    assert isinstance(errors[0], StreamCancelled)
