"""FastAPI app exposing the decision coach chat over HTTP with SSE streaming."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from decision_coach.chat.events import ChatEvent, ChatEventKind
from decision_coach.chat.models import Message, MessageRole, SessionSummary
from decision_coach.chat.pipeline import SendResult
from decision_coach.chat.service import ChatService
from decision_coach.log_setup import setup_logging
from decision_coach.runtime import create_runtime

DEFAULT_HOST = os.getenv("COACH_WEB_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("COACH_WEB_PORT", "3211"))
API_TOKEN = os.getenv("COACH_WEB_TOKEN")

setup_logging()
logger = logging.getLogger("decision_coach.web")

_service: Optional[ChatService] = None
_service_lock = asyncio.Lock()

app = FastAPI(title="Decision Coach Chat", version="0.1.0")


def _get_service() -> ChatService:
    """Process-wide conversation view, created on first use."""

    global _service
    if _service is None:
        _service = create_runtime().create_chat_service()
    return _service


class ChatRequest(BaseModel):
    """Payload for chat requests."""

    message: str = Field(..., min_length=1, description="User message or slash command")
    session_id: Optional[str] = Field(default=None, description="Existing session to continue; new if omitted")
    decision_ids: Optional[List[str]] = Field(default=None, description="Decisions to attach to the conversation")


class RenameRequest(BaseModel):
    title: str = Field(..., min_length=1)


class ToolRunRequest(BaseModel):
    session_id: Optional[str] = None
    values: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str


async def require_token(authorization: Optional[str] = Header(default=None)) -> None:
    """Simple bearer token guard; skip if no token configured."""

    if not API_TOKEN:
        return
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or token != API_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")


def _sse_event(event: str, payload: dict) -> str:
    """Render a single SSE event line."""

    data = json.dumps(payload, ensure_ascii=False)
    return f"event: {event}\ndata: {data}\n\n"


def _message_payload(message: Message) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": message.id,
        "role": message.role.value,
        "content": message.content,
        "created_at": message.created_at,
        "context_decision_ids": list(message.context_decision_ids),
    }
    if message.tool_execution is not None:
        payload["tool_execution"] = message.tool_execution.to_dict()
    if message.tool_input is not None:
        payload["tool_input"] = {
            "tool_id": message.tool_input.tool_id,
            "tool_name": message.tool_input.tool_name,
            "status": message.tool_input.status.value,
            "values": message.tool_input.values,
            "errors": message.tool_input.errors,
        }
    return payload


def _summary_payload(summary: SessionSummary) -> Dict[str, Any]:
    return {
        "id": summary.id,
        "title": summary.display_title,
        "created_at": summary.created_at,
        "updated_at": summary.updated_at,
        "trigger_type": summary.trigger_type.value,
        "attached_decision_ids": list(summary.attached_decision_ids),
        "message_count": summary.message_count,
        "first_message_preview": summary.first_message_preview,
    }


def _result_payload(result: SendResult) -> Dict[str, Any]:
    return {
        "status": result.status.value,
        "session_id": result.session_id,
        "message": _message_payload(result.message) if result.message is not None else None,
        "error": result.error,
    }


async def _activate(service: ChatService, session_id: Optional[str], decision_ids: Optional[List[str]]) -> None:
    if session_id and service.sessions.resolve(session_id) != service.state.session_id:
        try:
            await service.open_session(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
    elif not session_id and decision_ids is not None:
        service.new_session(decision_ids)
        return
    elif not session_id:
        service.new_session()
        return
    if decision_ids is not None:
        await service.set_attachments(decision_ids)


@app.get("/health", response_model=HealthResponse)
async def health(_: None = Depends(require_token)) -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/backend")
async def backend(_: None = Depends(require_token)) -> Dict[str, Any]:
    service = _get_service()
    available = await service.check_backend()
    return {"available": available, "models": list(service.state.models), "model": service.state.model}


@app.get("/sessions")
async def list_sessions(
    q: Optional[str] = None,
    limit: Optional[int] = None,
    _: None = Depends(require_token),
) -> Dict[str, Any]:
    service = _get_service()
    summaries = await service.list_sessions()
    if q:
        summaries = service.search_sessions(q)
    if limit:
        summaries = summaries[:limit]
    return {"sessions": [_summary_payload(summary) for summary in summaries]}


@app.get("/sessions/{session_id}/messages")
async def session_messages(session_id: str, _: None = Depends(require_token)) -> Dict[str, Any]:
    service = _get_service()
    async with _service_lock:
        try:
            messages = await service.open_session(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"session_id": service.state.session_id, "messages": [_message_payload(m) for m in messages]}


@app.patch("/sessions/{session_id}")
async def rename_session(session_id: str, req: RenameRequest, _: None = Depends(require_token)) -> Dict[str, Any]:
    service = _get_service()
    try:
        await service.rename_session(session_id, req.title)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"session_id": session_id, "title": req.title.strip()}


@app.delete("/sessions/{session_id}")
async def delete_session(session_id: str, _: None = Depends(require_token)) -> Dict[str, Any]:
    service = _get_service()
    await service.delete_session(session_id)
    return {"deleted": session_id}


@app.get("/tools")
async def list_tools(_: None = Depends(require_token)) -> Dict[str, Any]:
    service = _get_service()
    tools = []
    for tool in service.registry.list():
        description = tool.describe()
        description["shortcuts"] = service.registry.shortcuts(tool.id)
        tools.append(description)
    return {"tools": tools}


@app.post("/tools/{tool_id}/run")
async def run_tool(tool_id: str, req: ToolRunRequest, _: None = Depends(require_token)) -> Dict[str, Any]:
    service = _get_service()
    tool = service.registry.get(tool_id)
    if tool is None:
        raise HTTPException(status_code=404, detail=f"Unknown tool '{tool_id}'")
    async with _service_lock:
        await _activate(service, req.session_id, None)
        message = await service.select_tool(tool_id)
        if message is not None and message.role is MessageRole.TOOL_INPUT:
            errors = await service.submit_tool_input(message.id, req.values)
            if errors:
                service.cancel_tool_input(message.id)
                raise HTTPException(status_code=422, detail=errors)
            message = next(
                (m for m in reversed(service.messages) if m.role is MessageRole.TOOL_RESULT),
                None,
            )
    if message is None:
        raise HTTPException(status_code=500, detail=service.state.error or "Tool run failed")
    return {"session_id": service.state.session_id, "message": _message_payload(message)}


@app.post("/chat/stream")
async def chat_stream(
    req: ChatRequest,
    request: Request,
    _: None = Depends(require_token),
):
    service = _get_service()

    async def event_generator() -> AsyncGenerator[str, None]:
        queue: "asyncio.Queue[ChatEvent]" = asyncio.Queue()
        unsubscribe = service.events.subscribe(queue.put_nowait)
        try:
            async with _service_lock:
                try:
                    await _activate(service, req.session_id, req.decision_ids)
                except HTTPException as exc:
                    yield _sse_event("error", {"message": exc.detail})
                    yield _sse_event("done", {})
                    return
                if not service.pipeline.backend_ready:
                    await service.check_backend()
                yield _sse_event("session", {"session_id": service.state.session_id})

                task = asyncio.create_task(service.send(req.message))
                while not task.done() or not queue.empty():
                    if await request.is_disconnected():
                        service.cancel()
                        break
                    try:
                        event = await asyncio.wait_for(queue.get(), timeout=0.1)
                    except asyncio.TimeoutError:
                        continue
                    rendered = _render_event(event)
                    if rendered is not None:
                        yield rendered
                result = await task
        except Exception as exc:  # pragma: no cover - surfaced to client
            logger.exception("Chat stream failed", extra={"session_id": req.session_id})
            yield _sse_event("error", {"message": str(exc)})
            yield _sse_event("done", {})
            return
        finally:
            unsubscribe()

        yield _sse_event("result", _result_payload(result))
        yield _sse_event("done", {})

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
        "Connection": "keep-alive",
    }

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=headers,
    )


def _render_event(event: ChatEvent) -> Optional[str]:
    if event.kind is ChatEventKind.MESSAGE_UPSERTED:
        return _sse_event("message", _message_payload(event.payload["message"]))
    if event.kind is ChatEventKind.MESSAGE_REMOVED:
        return _sse_event("removed", {"id": event.payload["message_id"]})
    if event.kind is ChatEventKind.SESSION_CHANGED and "previous_id" in event.payload:
        return _sse_event("session", {"session_id": event.session_id, "previous_id": event.payload["previous_id"]})
    if event.kind is ChatEventKind.ERROR:
        return _sse_event("error", {"message": event.payload.get("error")})
    return None


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


__all__ = ["app", "DEFAULT_HOST", "DEFAULT_PORT"]
