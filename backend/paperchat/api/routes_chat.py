"""Streaming chat route."""

from __future__ import annotations

import queue
import threading
from dataclasses import asdict
from typing import Any, Iterator

import orjson
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from paperchat.api.dependencies import get_chat_service
from paperchat.chat.service import ChatService
from paperchat.core.config import PROFILE_KEYS
from paperchat.core.logging import get_logger
from paperchat.llm.cancellation import CancellationToken
from paperchat.llm.types import ChatTurn, ReasoningEvent
from paperchat.models.dto import ChatRequestBody

logger = get_logger(__name__)

router = APIRouter()

_END = object()


def sse_frame(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {orjson.dumps(data).decode('utf-8')}\n\n"


@router.post("/chat", summary="Ask a question and stream the answer as server-sent events")
def chat(request: ChatRequestBody, service: ChatService = Depends(get_chat_service)) -> StreamingResponse:
    if request.profile not in PROFILE_KEYS:
        raise HTTPException(status_code=400, detail=f"Unknown profile '{request.profile}'")
    cancel = CancellationToken()
    events: "queue.Queue[Any]" = queue.Queue()

    def on_reasoning(event: ReasoningEvent) -> None:
        events.put(("reasoning", {"summary": event.summary, "details": event.details}))

    def worker() -> None:
        try:
            outcome = service.ask(
                request.question,
                document_id=request.document_id,
                history=[ChatTurn(role=turn.role, content=turn.content) for turn in request.history],
                images=request.images,
                profile_key=request.profile,
                reasoning_level=request.reasoning_level,
                selected_text=request.selected_text,
                on_delta=lambda delta: events.put(("delta", {"text": delta})),
                on_reasoning=on_reasoning,
                cancel=cancel,
            )
            if outcome.status == "error":
                events.put(("error", {"message": outcome.error}))
            events.put(("done", asdict(outcome)))
        except Exception as exc:  # noqa: BLE001 - reported to the client as an error event
            logger.exception("Chat worker failed")
            events.put(("error", {"message": str(exc)}))
        finally:
            events.put(_END)

    threading.Thread(target=worker, name="paperchat-chat", daemon=True).start()

    def frames() -> Iterator[str]:
        try:
            while True:
                item = events.get()
                if item is _END:
                    break
                name, data = item
                yield sse_frame(name, data)
        finally:
            # Closed early when the client goes away.
            cancel.cancel()

    return StreamingResponse(frames(), media_type="text/event-stream")


__all__ = ["router", "sse_frame"]
