"""Process-level wiring: one registry, orchestrator and structured coercer.

Built once at startup (`Runtime.from_config`) and passed explicitly to the
CLI and HTTP layers. Methods are thin pass-throughs so callers only need one
object.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional

from cachette.config import AggregatedConfig, get_config
from cachette.hub import Acquirer, HubTransport, ProgressCallback
from cachette.llm.engine import InferenceEngine, ModelHandle
from cachette.llm.llama_cpp_engine import LlamaCppEngine
from cachette.llm.types import QueryRequest, QueryResult
from cachette.query import ChatSession, QueryOrchestrator, StructuredQuery
from cachette.registry import ModelRecord, ModelRegistry


def build_engine(cfg: AggregatedConfig) -> InferenceEngine:
    return LlamaCppEngine(
        n_ctx=cfg.llm.n_ctx,
        n_gpu_layers=cfg.llm.n_gpu_layers,
        n_threads=cfg.llm.n_threads,
        weights_file=cfg.hub.weights_file,
    )


@dataclass
class Runtime:
    config: AggregatedConfig
    registry: ModelRegistry
    orchestrator: QueryOrchestrator
    structured: StructuredQuery

    @classmethod
    def from_config(
        cls,
        cfg: AggregatedConfig | None = None,
        engine: InferenceEngine | None = None,
        transport: HubTransport | None = None,
    ) -> "Runtime":
        cfg = cfg or get_config()
        transport = transport or HubTransport(
            endpoint=cfg.hub.endpoint,
            revision=cfg.hub.revision,
            timeout_s=cfg.hub.timeout_s,
        )
        acquirer = Acquirer(transport, required_files=cfg.hub.required_files())
        registry = ModelRegistry(
            cfg.models_dir(), engine or build_engine(cfg), acquirer
        )
        orchestrator = QueryOrchestrator(
            registry,
            default_system_prompt=cfg.llm.system_prompt,
            default_temperature=cfg.llm.temperature,
        )
        structured = StructuredQuery(
            orchestrator, default_temperature=cfg.llm.structured_temperature
        )
        return cls(cfg, registry, orchestrator, structured)

    @property
    def default_model(self) -> str:
        return self.config.llm.default_model

    # --- lifecycle ---------------------------------------------------------
    def acquire(
        self,
        model_id: str,
        destination_root: str | Path | None = None,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Path:
        """Download into `<root>/<id with / → _>`; returns that directory."""
        directory = self.registry.model_directory(model_id, destination_root)
        self.registry.acquirer.acquire(
            model_id,
            directory,
            force=force,
            on_progress=on_progress,
            cancel=cancel,
        )
        return directory

    def ensure_available(self, model_id: str, **kwargs: Any) -> Path:
        return self.registry.ensure_available(model_id, **kwargs)

    def load(self, id_or_path: str) -> ModelHandle:
        return self.registry.load(id_or_path)

    def unload(self, key: str) -> bool:
        return self.registry.unload(key)

    def unload_all(self) -> int:
        return self.registry.unload_all()

    def delete(self, model_id: str) -> bool:
        return self.registry.delete(model_id)

    def list_available(
        self, directory: str | Path | None = None
    ) -> List[ModelRecord]:
        return self.registry.list_available(directory)

    def model_info(self, id_or_path: str) -> ModelRecord:
        return self.registry.model_info(id_or_path)

    # --- queries -----------------------------------------------------------
    def respond(
        self,
        request: QueryRequest,
        reference: str | None = None,
        download_destination: str | Path | None = None,
    ) -> QueryResult:
        return self.orchestrator.respond(
            request, reference or self.default_model, download_destination
        )

    def query(self, prompt: str, reference: str | None = None, **kwargs: Any) -> str:
        return self.orchestrator.query(
            prompt, reference or self.default_model, **kwargs
        )

    def query_structured(
        self,
        prompt: str,
        schema: Any,
        reference: str | None = None,
        **kwargs: Any,
    ) -> Any:
        return self.structured.query_structured(
            prompt, schema, reference or self.default_model, **kwargs
        )

    def session(self, reference: str | None = None, **kwargs: Any) -> ChatSession:
        return ChatSession(
            self.orchestrator, reference or self.default_model, **kwargs
        )

    def close(self) -> None:
        self.registry.unload_all()
        self.registry.acquirer.transport.close()


__all__ = ["Runtime", "build_engine"]
