"""Per-section config schemas."""
from .core import HubConfig, StorageConfig  # noqa: F401
from .llm import LLMConfig  # noqa: F401
from .observability import LoggingConfig  # noqa: F401

__all__ = ["HubConfig", "StorageConfig", "LLMConfig", "LoggingConfig"]
