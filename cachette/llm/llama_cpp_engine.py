"""llama.cpp inference engine.

Summary:
* materialize() loads the configured weights file when it is a GGUF, else
  the first *.gguf file found in the model directory.
* GPU offload failure falls back to CPU (n_gpu_layers=0) once.
* generate() uses create_chat_completion so multi-turn history maps onto
  the model's chat template.
* active memory is approximated by the summed weight-file sizes of
  materialized handles (mmap footprint).
"""
from __future__ import annotations

import logging
from pathlib import Path
from threading import Lock
from time import perf_counter
from typing import Any, Dict, Sequence

from cachette import metrics

from .engine import InferenceEngine, ModelHandle
from .types import ChatMessage

logger = logging.getLogger(__name__)


def _resolve_n_gpu_layers(raw: Any) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered == "auto":
            return -1
        if not lowered:
            return None
        try:
            return int(lowered)
        except ValueError:
            return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def find_weights(directory: Path, preferred: str | None = None) -> Path:
    if preferred and preferred.endswith(".gguf"):
        candidate = directory / preferred
        if candidate.is_file():
            return candidate
    ggufs = sorted(directory.glob("*.gguf"))
    if not ggufs:
        raise FileNotFoundError(f"no GGUF weights in {directory}")
    return ggufs[0]


class LlamaCppEngine(InferenceEngine):
    def __init__(
        self,
        n_ctx: int = 4096,
        n_gpu_layers: str | int | None = "auto",
        n_threads: int | None = None,
        weights_file: str | None = None,
    ) -> None:
        self._weights_file = weights_file
        self._n_ctx = n_ctx
        self._n_gpu_layers = _resolve_n_gpu_layers(n_gpu_layers)
        self._n_threads = n_threads
        self._resident: Dict[int, int] = {}
        self._lock = Lock()

    def _build_kwargs(self, weights: Path) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model_path": str(weights),
            "n_ctx": self._n_ctx,
            "verbose": False,
        }
        if self._n_gpu_layers is not None:
            kwargs["n_gpu_layers"] = self._n_gpu_layers
        if self._n_threads:
            kwargs["n_threads"] = int(self._n_threads)
        return kwargs

    def active_memory_bytes(self) -> int:
        with self._lock:
            return sum(self._resident.values())

    def materialize(self, key: str, directory: Path) -> ModelHandle:
        from llama_cpp import Llama  # heavy import deferred

        weights = find_weights(directory, self._weights_file)
        kwargs = self._build_kwargs(weights)
        start = perf_counter()
        try:
            llama = Llama(**kwargs)
        except Exception as gpu_exc:  # noqa: BLE001
            if kwargs.get("n_gpu_layers") in (None, 0):
                raise
            logger.warning("GPU offload failed for %s, retrying on CPU", key)
            try:
                llama = Llama(**{**kwargs, "n_gpu_layers": 0})
            except Exception:  # noqa: BLE001
                raise gpu_exc
            metrics.inc("llama_gpu_fallback_total", {"model": key})
        size = weights.stat().st_size
        handle = ModelHandle(
            key=key,
            path=directory,
            size_bytes=size,
            native=llama,
            metadata={
                "weights": weights.name,
                "n_ctx": self._n_ctx,
                "load_ms": int((perf_counter() - start) * 1000),
            },
        )
        with self._lock:
            self._resident[id(handle)] = size
        return handle

    def generate(
        self,
        handle: ModelHandle,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        out = handle.native.create_chat_completion(
            messages=[{"role": m.role, "content": m.content} for m in messages],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        choice = (out.get("choices") or [{}])[0]
        return (choice.get("message") or {}).get("content")

    def release(self, handle: ModelHandle) -> None:
        with self._lock:
            self._resident.pop(id(handle), None)
        native = handle.native
        handle.native = None
        close = getattr(native, "close", None)
        if callable(close):
            close()


__all__ = ["LlamaCppEngine", "find_weights"]
