"""/generate route: SSE token stream with thinking segmentation and TPS.

Frames (in order):
  meta      request/message ids, model, marker rules mode
  token     raw chunk, visible response buffer, live token count + tps
  thinking  one per completed thinking segment
  end       final status, response text, tps summary
  error     provider / generation failure (followed by end)
"""
from __future__ import annotations

import logging
import time
import uuid

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from core.config import get_config
from core.errors import map_exception, validate_error_type
from core.events import (
    GenerationCancelled,
    GenerationCompleted,
    GenerationStarted,
    emit,
)
from core.llm.exceptions import ModelLoadError, UnknownModelError
from core.thinking import StreamingSegmenter
from core.thinking.rules import rules_mode
from core.thinking.segmenter import now_ms
from core.tps import (
    TPSSample,
    calculate_tps,
    estimate_tokens,
    format_tps,
    get_tps_rating,
    live_tps,
)
from bookbag.api import abort_registry
from bookbag.api.sse import json_event

logger = logging.getLogger("api.generate")

router = APIRouter()


class GenerateRequest(BaseModel):  # noqa: D401
    session_id: str
    model: str
    prompt: str
    message_id: str | None = None
    chat_id: str | None = None
    user_id: str | None = None
    max_output_tokens: int | None = Field(None, gt=0)


@router.post("/generate")
def generate(req: GenerateRequest, request: Request):  # noqa: D401
    if not req.prompt.strip():
        raise HTTPException(status_code=400, detail="prompt-empty")
    state = request.app.state
    cfg = get_config()
    model_id = req.model
    try:
        provider = state.model_service.get_provider(model_id)
    except UnknownModelError as e:
        raise HTTPException(
            status_code=404,
            detail={"error_type": "unknown-model", "message": str(e)},
        ) from e
    except ModelLoadError as e:
        raise HTTPException(
            status_code=503,
            detail={
                "error_type": validate_error_type(
                    map_exception(e, "model.load")
                ),
                "message": str(e),
            },
        ) from e

    rules = state.rule_cache.get(model_id) if cfg.thinking.enabled else []
    mode = rules_mode(rules)
    message_id = req.message_id or uuid.uuid4().hex
    chat_id = req.chat_id or req.session_id
    state.thinking_store.bind_message(message_id, chat_id)

    request_id = str(uuid.uuid4())
    abort_registry.register(request_id)
    emit(
        GenerationStarted(
            request_id=request_id,
            message_id=message_id,
            model_id=model_id,
            prompt_chars=len(req.prompt),
            rules_mode=mode,
        )
    )
    max_tokens = req.max_output_tokens or cfg.llm.max_output_tokens
    timeout_s = cfg.llm.generation_timeout_s
    chars_per_token = cfg.tps.chars_per_token
    dispatcher = state.dispatcher

    def _iter():  # noqa: D401
        t_start = time.time()
        segmenter = StreamingSegmenter(
            rules,
            dispatcher,
            message_id=message_id,
            model_id=model_id,
            generation_start_time=now_ms(),
            tail_window_chars=cfg.thinking.tail_window_chars,
        )
        token_count = 0
        thinking_so_far = ""
        cancel_reason: str | None = None
        yield json_event(
            "meta",
            {
                "request_id": request_id,
                "message_id": message_id,
                "chat_id": chat_id,
                "model_id": model_id,
                "rules_mode": mode,
            },
        )
        try:
            for piece in provider.stream(req.prompt, max_tokens=max_tokens):
                if abort_registry.is_aborted(request_id):
                    cancel_reason = "user_abort"
                    break
                if time.time() - t_start > timeout_s:
                    cancel_reason = "timeout"
                    break
                snap = segmenter.process_chunk(piece)
                token_count = estimate_tokens(snap.raw_buffer, chars_per_token)
                elapsed_ms = (time.time() - t_start) * 1000
                yield json_event(
                    "token",
                    {
                        "request_id": request_id,
                        "text": piece,
                        "response_buffer": snap.response_buffer,
                        "token_count": token_count,
                        "tps": live_tps(token_count, elapsed_ms),
                    },
                )
                for seg in snap.new_segments:
                    thinking_so_far += seg.content
                    yield json_event(
                        "thinking",
                        {
                            "request_id": request_id,
                            "message_id": message_id,
                            "section_id": seg.section_id,
                            "thinking_delta": seg.content,
                            "thinking_buffer": thinking_so_far,
                            "thinking_start_time": seg.start_time,
                            "thinking_end_time": seg.end_time,
                        },
                    )
        except Exception as e:  # noqa: BLE001
            code = validate_error_type(map_exception(e, "generation"))
            logger.warning(
                "generation failed request=%s model=%s error_type=%s: %s",
                request_id, model_id, code, e,
            )
            segmenter.abort()
            latency_ms = int((time.time() - t_start) * 1000)
            emit(
                GenerationCompleted(
                    request_id=request_id,
                    message_id=message_id,
                    model_id=model_id,
                    status="error",
                    output_tokens=token_count,
                    latency_ms=latency_ms,
                    thinking_sections=segmenter.detected_sections_count,
                    tokens_per_second=0.0,
                    error_type=code,
                    message=str(e)[:400],
                )
            )
            yield json_event(
                "error",
                {
                    "request_id": request_id,
                    "error_type": code,
                    "message": str(e),
                },
            )
            yield json_event(
                "end", {"request_id": request_id, "status": "error"}
            )
            return

        latency_ms = int((time.time() - t_start) * 1000)
        if cancel_reason is not None:
            segmenter.abort()
            emit(
                GenerationCancelled(
                    request_id=request_id,
                    message_id=message_id,
                    model_id=model_id,
                    reason=cancel_reason,
                    latency_ms=latency_ms,
                    thinking_sections=segmenter.detected_sections_count,
                )
            )
            yield json_event(
                "end",
                {
                    "request_id": request_id,
                    "message_id": message_id,
                    "status": "cancelled",
                    "reason": cancel_reason,
                    "thinking_sections": segmenter.detected_sections_count,
                },
            )
            return

        snap = segmenter.finish()
        if not dispatcher.drain(timeout=cfg.thinking.drain_timeout_s):
            logger.warning(
                "thinking saves still pending message=%s", message_id
            )
        tps = calculate_tps(token_count, latency_ms)
        state.tps_store.record(
            TPSSample(
                message_id=message_id,
                tokens_per_second=tps,
                token_count=token_count,
                generation_time_ms=latency_ms,
                model_id=model_id,
                chat_id=chat_id,
                user_id=req.user_id,
            )
        )
        emit(
            GenerationCompleted(
                request_id=request_id,
                message_id=message_id,
                model_id=model_id,
                status="ok",
                output_tokens=token_count,
                latency_ms=latency_ms,
                thinking_sections=segmenter.detected_sections_count,
                tokens_per_second=tps,
            )
        )
        yield json_event(
            "end",
            {
                "request_id": request_id,
                "message_id": message_id,
                "status": "ok",
                "response": snap.response_buffer,
                "thinking_sections": segmenter.detected_sections_count,
                "output_tokens": token_count,
                "generation_time_ms": latency_ms,
                "tps": round(tps, 2),
                "tps_formatted": format_tps(tps),
                "rating": get_tps_rating(tps).to_dict(),
            },
        )

    def _stream():  # noqa: D401
        # client disconnects close the generator; the id must not leak
        try:
            yield from _iter()
        finally:
            abort_registry.clear(request_id)

    return StreamingResponse(_stream(), media_type="text/event-stream")


@router.post("/generate/abort")
def abort_generation(payload: dict):  # noqa: D401
    rid = payload.get("request_id") if isinstance(payload, dict) else None
    if not rid:
        return {"ok": False, "error": "missing-request_id"}
    applied = abort_registry.abort(str(rid))
    if not applied:
        logger.info("abort for unknown request=%s", rid)
    return {"ok": applied, "request_id": rid}


__all__ = ["router", "GenerateRequest"]
