"""Per-model marker rule endpoints (list / add / delete)."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from core.thinking.rules import rules_mode

router = APIRouter()


class RuleCreate(BaseModel):  # noqa: D401
    end_word: str = ""
    start_word: str | None = None


@router.get("/models/{model_id}/thinking-rules")
def list_rules(model_id: str, request: Request):  # noqa: D401
    rules = request.app.state.rule_store.list(model_id)
    return {
        "model_id": model_id,
        "mode": rules_mode(rules),
        "rules": [r.to_dict() for r in rules],
    }


@router.post("/models/{model_id}/thinking-rules", status_code=201)
def add_rule(model_id: str, body: RuleCreate, request: Request):
    try:
        rule = request.app.state.rule_store.add(
            model_id, end_word=body.end_word, start_word=body.start_word
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail="end-word-required") from e
    return {"rule": rule.to_dict()}


@router.delete("/models/{model_id}/thinking-rules/{rule_id}")
def delete_rule(model_id: str, rule_id: int, request: Request):
    store = request.app.state.rule_store
    if not any(r.id == rule_id for r in store.list(model_id)):
        raise HTTPException(status_code=404, detail="rule-not-found")
    store.remove(rule_id)
    return {"ok": True, "rule_id": rule_id}


__all__ = ["router"]
