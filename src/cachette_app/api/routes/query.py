"""/query routes: free-text and schema-constrained generation."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cachette.llm.types import QueryRequest
from cachette.query.structured import MAX_STRUCTURED_RETRIES
from cachette.runtime import Runtime
from cachette_app.api.deps import get_runtime

router = APIRouter(prefix="/query")


class QueryBody(BaseModel):  # noqa: D401
    prompt: str = Field(min_length=1)
    model: str | None = None
    system_prompt: str | None = None
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)
    download_destination: str | None = None


class StructuredBody(QueryBody):  # noqa: D401
    # Raw JSON Schema document; the decoded value is any JSON.
    json_schema: Dict[str, Any] | None = Field(None, alias="schema")
    retries: int = Field(0, ge=0, le=MAX_STRUCTURED_RETRIES)

    model_config = {"populate_by_name": True}


@router.post("")
def query(body: QueryBody, runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    request = QueryRequest(
        prompt=body.prompt,
        system_prompt=body.system_prompt,
        temperature=(
            runtime.config.llm.temperature
            if body.temperature is None else body.temperature
        ),
        token_budget=body.max_tokens,
    )
    result = runtime.respond(
        request, body.model, download_destination=body.download_destination
    )
    return result.to_dict() | {"tokens_per_second": result.tokens_per_second}


@router.post("/structured")
def query_structured(body: StructuredBody,
                     runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    data = runtime.query_structured(
        body.prompt,
        Any,
        body.model,
        system_prompt=body.system_prompt,
        temperature=body.temperature,
        token_budget=body.max_tokens,
        download_destination=body.download_destination,
        retries=body.retries,
        json_schema=body.json_schema,
    )
    return {"data": data}


__all__ = ["router"]
