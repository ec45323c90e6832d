"""Thinking section endpoints: create, read by message / chat, update."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

router = APIRouter()


class ThinkingCreate(BaseModel):  # noqa: D401
    message_id: str | None = None
    section_id: int | None = None
    content: str | None = None
    start_time: int | None = None
    end_time: int | None = None
    tokens_used: int = 0
    chat_id: str | None = None


class ThinkingUpdate(BaseModel):  # noqa: D401
    content: str | None = None
    end_time: int | None = None
    tokens_used: int | None = None


@router.post("/thinking", status_code=201)
def create_section(body: ThinkingCreate, request: Request):
    store = request.app.state.thinking_store
    try:
        rec = store.create(
            body.message_id,  # type: ignore[arg-type]
            body.section_id,
            body.content,  # type: ignore[arg-type]
            body.start_time,
            body.end_time,
            body.tokens_used,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if body.chat_id:
        store.bind_message(rec.message_id, body.chat_id)
    return {"thinking": rec.to_dict()}


@router.get("/thinking/message/{message_id}")
def sections_for_message(message_id: str, request: Request):  # noqa: D401
    records = request.app.state.thinking_store.list_by_message(message_id)
    return {
        "message_id": message_id,
        "sections": [r.to_dict() for r in records],
    }


@router.get("/thinking/chat/{chat_id}")
def sections_for_chat(chat_id: str, request: Request):  # noqa: D401
    grouped = request.app.state.thinking_store.list_by_chat(chat_id)
    return {
        "chat_id": chat_id,
        "sections": {
            mid: [r.to_dict() for r in records]
            for mid, records in grouped.items()
        },
    }


@router.put("/thinking/{thinking_id}")
def update_section(thinking_id: int, body: ThinkingUpdate, request: Request):
    rec = request.app.state.thinking_store.update(
        thinking_id,
        content=body.content,
        end_time=body.end_time,
        tokens_used=body.tokens_used,
    )
    if rec is None:
        raise HTTPException(status_code=404, detail="thinking-not-found")
    return {"thinking": rec.to_dict()}


__all__ = ["router"]
