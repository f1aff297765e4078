"""Query request/result types."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(slots=True, frozen=True)
class ChatMessage:
    role: str  # system|user|assistant
    content: str


@dataclass(slots=True)
class QueryRequest:
    prompt: str
    system_prompt: Optional[str] = None
    temperature: float = 0.7
    token_budget: Optional[int] = None


@dataclass(slots=True)
class QueryResult:
    response: str
    model_id: str
    model_path: str
    approx_tokens: int
    duration_seconds: float

    @property
    def tokens_per_second(self) -> float | None:
        if not self.approx_tokens or self.duration_seconds <= 0:
            return None
        return self.approx_tokens / self.duration_seconds

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = ["ChatMessage", "QueryRequest", "QueryResult"]
