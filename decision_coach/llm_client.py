"""HTTP client for a local Ollama server."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from .config import CONFIG, LLMConfig


@dataclass
class ChatMessage:
    """Simple representation of a chat message sent to the model."""

    role: str
    content: str


class BackendUnavailableError(RuntimeError):
    """Raised when the Ollama server cannot be reached or rejects a request."""


class StreamError(RuntimeError):
    """Raised when a streamed response is malformed or reports an error."""


class StreamCancelled(RuntimeError):
    """Delivered to ``on_error`` when a stream is stopped through its cancel token."""


class CancelToken:
    """Cooperative cancellation flag shared by a send and its stream."""

    def __init__(self) -> None:
        self._aborted = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on abort; returns a function that unregisters it."""

        if self._aborted:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove


class OllamaClient:
    """Thin wrapper over Ollama's ``/api`` endpoints."""

    def __init__(self, config: Optional[LLMConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or CONFIG.llm
        self.session = session or requests.Session()
        self.logger = logging.getLogger("decision_coach.llm_client")

    # ---- Health & models -------------------------------------------------
    def ping(self) -> bool:
        """Return True when ``GET /api/tags`` answers 200."""

        try:
            response = self.session.get(self._url("/api/tags"), timeout=self.config.health_timeout)
        except requests.exceptions.RequestException:
            self.logger.debug("Ollama health check failed", exc_info=True)
            return False
        return response.status_code == 200

    async def is_reachable(self) -> bool:
        return await asyncio.to_thread(self.ping)

    def list_models(self) -> List[str]:
        response = self._request("GET", "/api/tags", timeout=self.config.health_timeout)
        data = response.json()
        return [model["name"] for model in data.get("models", []) if model.get("name")]

    def default_model(self) -> str:
        """Prefer the configured model, else the first one installed."""

        try:
            models = self.list_models()
        except BackendUnavailableError:
            return self.config.model
        if self.config.model in models or not models:
            return self.config.model
        return models[0]

    # ---- Chat ------------------------------------------------------------
    def chat(
        self,
        messages: Iterable[ChatMessage],
        *,
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Send a non-streaming chat request and return the assistant content."""

        payload = self._build_payload(messages, model=model, options=options, stream=False)
        start = time.perf_counter()
        response = self._request("POST", "/api/chat", json=payload, timeout=self.config.request_timeout)
        data = response.json()
        self.logger.info(
            "LLM request completed",
            extra={
                "status_code": response.status_code,
                "model": payload["model"],
                "elapsed_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        try:
            return str(data["message"]["content"]).strip()
        except (KeyError, TypeError) as exc:
            raise StreamError(f"Unexpected Ollama response: {str(data)[:500]}") from exc

    async def stream_chat(
        self,
        messages: Iterable[ChatMessage],
        on_chunk: Callable[[str], None],
        on_complete: Callable[[], None],
        on_error: Callable[[Exception], None],
        *,
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        """Stream a chat response, invoking callbacks on the event loop thread.

        Exactly one of ``on_complete`` / ``on_error`` fires, and no chunk is
        delivered after it. The blocking HTTP read runs in a worker thread.
        """

        payload = self._build_payload(messages, model=model, options=options, stream=True)
        if cancel_token is not None and cancel_token.aborted:
            on_error(StreamCancelled("Stream cancelled before it started"))
            return

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()
        holder: Dict[str, requests.Response] = {}

        def post(kind: str, value: Any = None) -> None:
            if stop.is_set():
                return
            try:
                loop.call_soon_threadsafe(queue.put_nowait, (kind, value))
            except RuntimeError:
                # Loop already closed; nobody is listening anymore.
                stop.set()

        def reader() -> None:
            try:
                response = self._request(
                    "POST", "/api/chat", json=payload, timeout=self.config.request_timeout, stream=True
                )
            except BackendUnavailableError as exc:
                post("error", exc)
                return
            holder["response"] = response
            with response:
                try:
                    for line in response.iter_lines(decode_unicode=True):
                        if stop.is_set():
                            return
                        if not line:
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            post("error", StreamError(f"Malformed stream line: {line[:200]}"))
                            return
                        if data.get("error"):
                            post("error", StreamError(str(data["error"])))
                            return
                        content = (data.get("message") or {}).get("content")
                        if content:
                            post("chunk", content)
                        if data.get("done"):
                            post("done")
                            return
                except requests.exceptions.RequestException as exc:
                    post("error", BackendUnavailableError(f"Stream from Ollama interrupted: {exc}"))
                    return
            post("error", StreamError("Stream ended before the model reported completion"))

        def on_cancel() -> None:
            stop.set()
            queue.put_nowait(("cancelled", None))
            response = holder.get("response")
            if response is not None:
                response.close()

        remove_cancel = cancel_token.add_callback(on_cancel) if cancel_token is not None else (lambda: None)
        future = loop.run_in_executor(None, reader)
        future.add_done_callback(_retrieve_exception)

        chunk_count = 0
        start = time.perf_counter()
        try:
            while True:
                kind, value = await queue.get()
                if cancel_token is not None and cancel_token.aborted:
                    kind = "cancelled"
                if kind == "chunk":
                    chunk_count += 1
                    try:
                        on_chunk(value)
                    except Exception as exc:  # noqa: BLE001
                        self.logger.error("Chunk handler failed", exc_info=True)
                        on_error(exc)
                        return
                    continue
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                if kind == "done":
                    self.logger.info(
                        "LLM stream completed",
                        extra={"model": payload["model"], "chunk_count": chunk_count, "elapsed_ms": elapsed_ms},
                    )
                    on_complete()
                elif kind == "cancelled":
                    self.logger.info("LLM stream cancelled", extra={"chunk_count": chunk_count})
                    on_error(StreamCancelled("Stream cancelled"))
                else:
                    self.logger.error("LLM stream failed: %s", value, extra={"chunk_count": chunk_count})
                    on_error(value)
                return
        finally:
            stop.set()
            remove_cancel()

    # ---- Helpers ---------------------------------------------------------
    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}{path}"

    def _build_payload(
        self,
        messages: Iterable[ChatMessage],
        *,
        model: Optional[str],
        options: Optional[Dict[str, Any]],
        stream: bool,
    ) -> Dict[str, Any]:
        merged_options: Dict[str, Any] = {
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
        }
        if options:
            merged_options.update(options)
        return {
            "model": model or self.config.model,
            "messages": [{"role": message.role, "content": message.content} for message in messages],
            "stream": stream,
            "options": merged_options,
        }

    def _request(self, method: str, path: str, *, timeout: float, **kwargs: Any) -> requests.Response:
        url = self._url(path)
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout as exc:
            msg = (
                f"Ollama request timed out after {timeout}s (base_url={self.config.base_url}). "
                "Ensure the model is pulled and loaded, or raise COACH_LLM_TIMEOUT."
            )
            self.logger.error(msg, exc_info=True)
            raise BackendUnavailableError(msg) from exc
        except requests.exceptions.ConnectionError as exc:
            msg = (
                f"Could not connect to Ollama at {self.config.base_url}. "
                "Start Ollama or set COACH_LLM_BASE_URL to the correct endpoint."
            )
            self.logger.error(msg, exc_info=True)
            raise BackendUnavailableError(msg) from exc
        except requests.exceptions.RequestException as exc:
            msg = f"Ollama request failed for {url}: {exc}"
            self.logger.error(msg, exc_info=True)
            raise BackendUnavailableError(msg) from exc

        if response.status_code != 200:
            self.logger.error("Ollama request failed", extra={"status_code": response.status_code})
            detail = response.text[:500]
            response.close()
            raise BackendUnavailableError(f"Ollama returned {response.status_code}: {detail}")
        return response


def _retrieve_exception(future: "asyncio.Future[None]") -> None:
    if not future.cancelled():
        future.exception()


__all__ = [
    "BackendUnavailableError",
    "CancelToken",
    "ChatMessage",
    "OllamaClient",
    "StreamCancelled",
    "StreamError",
]
