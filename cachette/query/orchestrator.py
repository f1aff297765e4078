"""Query orchestration: resolve → budget → generate → measure."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import List, Sequence

from cachette.config.schemas.llm import DEFAULT_SYSTEM_PROMPT
from cachette.errors import map_exception, validate_error_type
from cachette.events import GenerationCompleted, GenerationStarted, emit
from cachette.llm.engine import ModelHandle
from cachette.llm.exceptions import (
    CachetteError,
    InvalidResponse,
    NotDownloaded,
    NotFound,
    QueryFailed,
)
from cachette.llm.types import ChatMessage, QueryRequest, QueryResult
from cachette.memory import recommended_token_budget
from cachette.registry.paths import LocalPath, classify
from cachette.registry.records import directory_size
from cachette.registry.store import ModelRegistry

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


@dataclass(slots=True)
class ResolvedModel:
    model_id: str
    path: Path
    handle: ModelHandle


def approx_tokens(text: str) -> int:
    """Rough generated-token estimate (~4 characters per token)."""
    return len(text) // CHARS_PER_TOKEN


class QueryOrchestrator:
    def __init__(
        self,
        registry: ModelRegistry,
        default_system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        default_temperature: float = 0.7,
    ) -> None:
        self.registry = registry
        self.default_system_prompt = default_system_prompt
        self.default_temperature = default_temperature

    # --- resolution --------------------------------------------------------
    def resolve(
        self,
        reference: str,
        download_destination: str | Path | None = None,
    ) -> ResolvedModel:
        ref = classify(reference)
        if isinstance(ref, LocalPath):
            handle = self.registry.load_directory(
                ref.key, ref.path, lambda: NotFound(str(ref.path))
            )
            return ResolvedModel(ref.key, ref.path, handle)
        directory = self.registry.ensure_available(
            ref.id, destination_root=download_destination
        )
        handle = self.registry.load_directory(
            ref.id, directory, lambda: NotDownloaded(ref.id)
        )
        return ResolvedModel(ref.id, directory, handle)

    def resolve_token_budget(
        self, resolved: ResolvedModel, token_budget: int | None
    ) -> int:
        if token_budget is not None:
            return token_budget
        try:
            size = directory_size(resolved.path)
        except OSError:
            size = 0
        return recommended_token_budget(size, self.registry.engine)

    def build_messages(
        self, request: QueryRequest
    ) -> List[ChatMessage]:
        system = request.system_prompt or self.default_system_prompt
        return [
            ChatMessage("system", system),
            ChatMessage("user", request.prompt),
        ]

    # --- execution ---------------------------------------------------------
    def complete(
        self,
        messages: Sequence[ChatMessage],
        reference: str,
        temperature: float | None = None,
        token_budget: int | None = None,
        download_destination: str | Path | None = None,
        structured: bool = False,
    ) -> QueryResult:
        """Run one generation over an explicit message history."""
        resolved = self.resolve(reference, download_destination)
        budget = self.resolve_token_budget(resolved, token_budget)
        temp = (
            self.default_temperature if temperature is None else temperature
        )
        logger.info(
            "token budget set to %d for %s", budget, resolved.model_id
        )
        rid = uuid.uuid4().hex
        emit(
            GenerationStarted(
                request_id=rid,
                model_id=resolved.model_id,
                temperature=temp,
                token_budget=budget,
                turns=len(messages),
                structured=structured,
            )
        )
        start = perf_counter()
        try:
            text = self.registry.engine.generate(
                resolved.handle, list(messages), temp, budget
            )
            if not isinstance(text, str):
                raise InvalidResponse(
                    f"engine returned {type(text).__name__}, expected text"
                )
        except Exception as e:  # noqa: BLE001
            latency = int((perf_counter() - start) * 1000)
            code = validate_error_type(map_exception(e, "generation"))
            emit(
                GenerationCompleted(
                    request_id=rid,
                    model_id=resolved.model_id,
                    status="error",
                    latency_ms=latency,
                    approx_tokens=0,
                    error_type=code,
                    message=str(e)[:400],
                )
            )
            if isinstance(e, CachetteError):
                raise
            raise QueryFailed(str(e) or e.__class__.__name__) from e
        duration = perf_counter() - start
        result = QueryResult(
            response=text,
            model_id=resolved.model_id,
            model_path=str(resolved.path),
            approx_tokens=approx_tokens(text),
            duration_seconds=duration,
        )
        emit(
            GenerationCompleted(
                request_id=rid,
                model_id=resolved.model_id,
                status="ok",
                latency_ms=int(duration * 1000),
                approx_tokens=result.approx_tokens,
            )
        )
        return result

    def respond(
        self,
        request: QueryRequest,
        reference: str,
        download_destination: str | Path | None = None,
    ) -> QueryResult:
        return self.complete(
            self.build_messages(request),
            reference,
            temperature=request.temperature,
            token_budget=request.token_budget,
            download_destination=download_destination,
        )

    def query(
        self,
        prompt: str,
        reference: str,
        download_destination: str | Path | None = None,
        temperature: float | None = None,
        token_budget: int | None = None,
        system_prompt: str | None = None,
    ) -> str:
        request = QueryRequest(
            prompt=prompt,
            system_prompt=system_prompt,
            temperature=(
                self.default_temperature if temperature is None
                else temperature
            ),
            token_budget=token_budget,
        )
        return self.respond(request, reference, download_destination).response


__all__ = [
    "QueryOrchestrator",
    "ResolvedModel",
    "approx_tokens",
    "CHARS_PER_TOKEN",
]
