"""Inference engine abstraction layer exports.

No built-in dummy engine. Tests implement their own lightweight fake.
"""

from .engine import InferenceEngine, ModelHandle  # noqa: F401
from .exceptions import (  # noqa: F401
    CachetteError,
    DownloadFailed,
    InsufficientMemory,
    InvalidPath,
    InvalidResponse,
    LoadFailed,
    NotDownloaded,
    NotFound,
    ParsingFailed,
    QueryFailed,
)
from .llama_cpp_engine import LlamaCppEngine  # noqa: F401
from .types import ChatMessage, QueryRequest, QueryResult  # noqa: F401

__all__ = [
    "InferenceEngine",
    "ModelHandle",
    "LlamaCppEngine",
    "ChatMessage",
    "QueryRequest",
    "QueryResult",
    "CachetteError",
    "DownloadFailed",
    "InsufficientMemory",
    "InvalidPath",
    "InvalidResponse",
    "LoadFailed",
    "NotDownloaded",
    "NotFound",
    "ParsingFailed",
    "QueryFailed",
]
