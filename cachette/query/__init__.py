"""Query layer: single-shot, multi-turn and structured generation."""
from .orchestrator import (  # noqa: F401
    QueryOrchestrator,
    ResolvedModel,
    approx_tokens,
)
from .session import ChatSession  # noqa: F401
from .structured import (  # noqa: F401
    MAX_STRUCTURED_RETRIES,
    StructuredQuery,
    clean_json_response,
    decode_structured,
)

__all__ = [
    "QueryOrchestrator",
    "ResolvedModel",
    "approx_tokens",
    "ChatSession",
    "StructuredQuery",
    "clean_json_response",
    "decode_structured",
    "MAX_STRUCTURED_RETRIES",
]
