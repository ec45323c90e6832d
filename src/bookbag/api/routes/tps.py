"""TPS endpoints: ad-hoc calculation, per-message update, chat/user stats."""
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from core.config import get_config
from core.tps import (
    calculate_tps,
    calculate_tps_from_timestamps,
    format_tps,
    get_tps_rating,
)

router = APIRouter()


class TPSCalculateRequest(BaseModel):  # noqa: D401
    token_count: Any = None
    duration_ms: Any = None
    start_time: Any = None
    end_time: Any = None


class TPSUpdateRequest(BaseModel):  # noqa: D401
    message_id: str | None = None
    tokens_per_second: Any = None


@router.post("/tps/calculate")
def calculate(body: TPSCalculateRequest):  # noqa: D401
    if body.start_time is not None and body.end_time is not None:
        tps = calculate_tps_from_timestamps(
            body.token_count, body.start_time, body.end_time
        )
    else:
        tps = calculate_tps(body.token_count, body.duration_ms)
    return {
        "tokens_per_second": tps,
        "formatted": format_tps(tps),
        "rating": get_tps_rating(tps).to_dict(),
    }


@router.post("/tps/update")
def update(body: TPSUpdateRequest, request: Request):  # noqa: D401
    try:
        return request.app.state.tps_store.update_message_tps(
            body.message_id, body.tokens_per_second
        )
    except ValueError as e:
        raise HTTPException(
            status_code=400,
            detail={"error_type": "invalid-tps-input", "message": str(e)},
        ) from e
    except KeyError as e:
        raise HTTPException(status_code=404, detail="message-not-found") from e


@router.get("/tps/chat/{chat_id}")
def chat_stats(
    chat_id: str,
    request: Request,
    limit: int | None = None,
    only_ai_messages: bool = True,
):
    cfg = get_config().tps
    stats, rows = request.app.state.tps_store.chat_stats(
        chat_id,
        limit=cfg.chat_stats_limit if limit is None else limit,
        only_ai_messages=only_ai_messages,
    )
    return {
        "chat_id": chat_id,
        "stats": stats.to_dict(),
        "messages": [r.to_dict() for r in rows],
    }


@router.get("/tps/user/{user_id}")
def user_stats(
    user_id: str,
    request: Request,
    limit: int | None = None,
    days_back: int | None = None,
    model_id: str | None = None,
):
    cfg = get_config().tps
    stats = request.app.state.tps_store.user_stats(
        user_id,
        limit=cfg.user_stats_limit if limit is None else limit,
        days_back=(
            cfg.user_stats_days_back if days_back is None else days_back
        ),
        model_id=model_id,
    )
    return {"user_id": user_id, "stats": stats}


__all__ = ["router"]
