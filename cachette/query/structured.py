"""Schema-constrained queries.

Pipeline: schema-conditioned system prompt → generation → cleanup of the
raw text (fences, surrounding prose) → TypeAdapter decode.

Single decode attempt by default. Callers may ask for up to
MAX_STRUCTURED_RETRIES extra attempts; each re-issues the prompt with a
clarification naming the previous decode failure.
"""
from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, Type, TypeVar

from pydantic import TypeAdapter, ValidationError

from cachette.events import StructuredDecodeFailed, emit
from cachette.llm.exceptions import ParsingFailed
from cachette.llm.types import ChatMessage

from .orchestrator import QueryOrchestrator

T = TypeVar("T")

EXCERPT_CHARS = 200
MAX_STRUCTURED_RETRIES = 2

JSON_INSTRUCTION = (
    "IMPORTANT: You must respond ONLY with valid JSON that matches the "
    "requested structure.\n"
    "Do not include any explanatory text, markdown code blocks, or other "
    "content.\n"
    "Your entire response should be parseable as JSON."
)

logger = logging.getLogger(__name__)


def _adapter(schema: Any) -> TypeAdapter:
    if isinstance(schema, TypeAdapter):
        return schema
    return TypeAdapter(schema)


def schema_instruction(
    schema: Any, json_schema: Dict[str, Any] | None = None
) -> str:
    """JSON-only instruction, with the JSON Schema when one can be built.

    `json_schema` overrides the schema derived from `schema` (used when the
    caller only has a raw JSON Schema document, e.g. over HTTP).
    """
    if json_schema is None:
        try:
            json_schema = _adapter(schema).json_schema()
        except Exception:  # noqa: BLE001
            return JSON_INSTRUCTION
    if not json_schema:
        return JSON_INSTRUCTION
    rendered = json.dumps(json_schema, indent=2)
    return f"{JSON_INSTRUCTION}\nThe JSON must conform to this JSON Schema:\n{rendered}"


def structured_system_prompt(
    system_prompt: str | None,
    schema: Any,
    json_schema: Dict[str, Any] | None = None,
) -> str:
    instruction = schema_instruction(schema, json_schema)
    return f"{system_prompt or ''}\n\n{instruction}".strip()


def clean_json_response(response: str) -> str:
    text = response.strip()
    if text.startswith("```json"):
        text = text[len("```json"):]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    text = text.strip()

    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return text
    start = min(starts)
    end = text.rfind("}" if text[start] == "{" else "]")
    if end > start:
        return text[start:end + 1]
    return text


def _reason(err: ValidationError) -> str:
    parts = []
    for item in err.errors()[:5]:
        loc = ".".join(str(p) for p in item.get("loc", ())) or "<root>"
        parts.append(f"{loc}: {item.get('msg')}")
    return "Decoding failed: " + "; ".join(parts)


def decode_structured(response: str, schema: Type[T] | Any) -> T:
    cleaned = clean_json_response(response)
    try:
        return _adapter(schema).validate_json(cleaned)
    except ValidationError as e:
        raise ParsingFailed(_reason(e), cleaned[:EXCERPT_CHARS]) from e


class StructuredQuery:
    def __init__(
        self,
        orchestrator: QueryOrchestrator,
        default_temperature: float = 0.3,
    ) -> None:
        self.orchestrator = orchestrator
        self.default_temperature = default_temperature

    def query_structured(
        self,
        prompt: str,
        schema: Type[T] | Any,
        reference: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        token_budget: int | None = None,
        download_destination: str | Path | None = None,
        retries: int = 0,
        json_schema: Dict[str, Any] | None = None,
    ) -> T:
        attempts = 1 + max(0, min(retries, MAX_STRUCTURED_RETRIES))
        system = structured_system_prompt(system_prompt, schema, json_schema)
        temp = self.default_temperature if temperature is None else temperature
        rid = uuid.uuid4().hex
        user_prompt = prompt
        attempt = 1
        while True:
            result = self.orchestrator.complete(
                [ChatMessage("system", system), ChatMessage("user", user_prompt)],
                reference,
                temperature=temp,
                token_budget=token_budget,
                download_destination=download_destination,
                structured=True,
            )
            try:
                return decode_structured(result.response, schema)
            except ParsingFailed as e:
                emit(
                    StructuredDecodeFailed(
                        request_id=rid,
                        model_id=result.model_id,
                        attempt=attempt,
                        reason=e.reason,
                        excerpt=e.excerpt,
                    )
                )
                logger.warning(
                    "structured decode attempt %d/%d failed: %s",
                    attempt, attempts, e.reason,
                )
                if attempt >= attempts:
                    raise
                attempt += 1
                user_prompt = (
                    f"{prompt}\n\nYour previous response could not be "
                    f"parsed ({e.reason}). Respond again with only the "
                    "JSON value."
                )


__all__ = [
    "StructuredQuery",
    "clean_json_response",
    "decode_structured",
    "schema_instruction",
    "structured_system_prompt",
    "JSON_INSTRUCTION",
    "MAX_STRUCTURED_RETRIES",
    "EXCERPT_CHARS",
]
