"""/sessions routes: multi-turn chat over one model."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from cachette.query import ChatSession
from cachette.runtime import Runtime
from cachette_app.api.deps import get_runtime
from cachette_app.api.session_store import SessionStore

router = APIRouter(prefix="/sessions")


class CreateSession(BaseModel):  # noqa: D401
    model: str | None = None
    system_prompt: str | None = None
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)


class SendMessage(BaseModel):  # noqa: D401
    prompt: str = Field(min_length=1)


def _store(request: Request) -> SessionStore:
    return request.app.state.sessions


def _session(session_id: str, store: SessionStore) -> ChatSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="unknown session")
    return session


def _history(session: ChatSession) -> list[dict]:
    return [{"role": m.role, "content": m.content} for m in session.history]


@router.post("")
def create(body: CreateSession, runtime: Runtime = Depends(get_runtime),
           store: SessionStore = Depends(_store)):  # noqa: D401
    session = runtime.session(
        body.model,
        system_prompt=body.system_prompt,
        temperature=body.temperature,
        token_budget=body.max_tokens,
    )
    return {"session_id": store.add(session), "model": session.reference}


@router.get("/{session_id}")
def history(session_id: str,
            store: SessionStore = Depends(_store)):  # noqa: D401
    return {"session_id": session_id,
            "history": _history(_session(session_id, store))}


@router.post("/{session_id}/messages")
def send(session_id: str, body: SendMessage,
         store: SessionStore = Depends(_store)):  # noqa: D401
    session = _session(session_id, store)
    response = session.send(body.prompt)
    return {"session_id": session_id, "response": response,
            "turns": len(session.history)}


@router.post("/{session_id}/reset")
def reset(session_id: str,
          store: SessionStore = Depends(_store)):  # noqa: D401
    session = _session(session_id, store)
    session.reset()
    return {"session_id": session_id, "history": _history(session)}


@router.delete("/{session_id}")
def close(session_id: str,
          store: SessionStore = Depends(_store)):  # noqa: D401
    return {"session_id": session_id, "closed": store.remove(session_id)}


__all__ = ["router"]
