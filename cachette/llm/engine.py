"""InferenceEngine interface.

The engine owns tokenization, accelerator execution, and sampling. The
registry only asks it to materialize a handle from a model directory, to
generate from a message list, and to report its resident memory.
Engines must not allocate heavy resources on import.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence

from .types import ChatMessage


@dataclass(eq=False)
class ModelHandle:
    """Opaque resident model; compared by identity."""

    key: str
    path: Path
    size_bytes: int
    native: Any = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class InferenceEngine(ABC):
    @abstractmethod
    def active_memory_bytes(self) -> int:
        """Memory currently held by materialized models."""

    @abstractmethod
    def materialize(self, key: str, directory: Path) -> ModelHandle:
        """Load weights from `directory`; raise on failure."""

    @abstractmethod
    def generate(
        self,
        handle: ModelHandle,
        messages: Sequence[ChatMessage],
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Return generated text for the conversation."""

    def release(self, handle: ModelHandle) -> None:  # optional hook
        """Release resources (default no-op)."""
        return None


__all__ = ["InferenceEngine", "ModelHandle"]
