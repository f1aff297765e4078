"""Exception hierarchy surfaced by every public operation."""
from __future__ import annotations

from typing import Any

_MB = 1024 * 1024


class CachetteError(Exception):
    """Base exception; `error_type` is a taxonomy code (see core errors)."""

    error_type = "internal"

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.error_type, "message": str(self)}


class NotDownloaded(CachetteError):
    error_type = "not-downloaded"

    def __init__(self, model_id: str) -> None:
        self.model_id = model_id
        super().__init__(
            f"Model '{model_id}' is not downloaded. "
            "Use `cachette download` to download it first."
        )


class NotFound(CachetteError):
    error_type = "not-found"

    def __init__(self, path: str) -> None:
        self.path = str(path)
        super().__init__(f"Model not found at path: {self.path}")


class LoadFailed(CachetteError):
    """Raised when the inference engine cannot materialize a model."""

    error_type = "load-failed"

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"Failed to load model: {cause}")


class DownloadFailed(CachetteError):
    error_type = "download-failed"

    def __init__(self, file: str, reason: str) -> None:
        self.file = file
        self.reason = reason
        super().__init__(f"Model download failed: {reason} for {file}")


class StorageFailed(CachetteError):
    """A model directory could not be read or removed."""

    error_type = "storage-failed"

    def __init__(self, path: str, cause: BaseException) -> None:
        self.path = str(path)
        self.cause = cause
        super().__init__(f"Storage operation failed for {self.path}: {cause}")


class QueryFailed(CachetteError):
    error_type = "query-failed"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Query failed: {reason}")


class InvalidResponse(CachetteError):
    error_type = "invalid-response"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid response from model: {reason}")


class ParsingFailed(CachetteError):
    """Structured output could not be decoded against the schema."""

    error_type = "parsing-failed"

    def __init__(self, reason: str, excerpt: str = "") -> None:
        self.reason = reason
        self.excerpt = excerpt
        msg = f"Failed to parse JSON response: {reason}"
        if excerpt:
            msg += f". Response was: {excerpt}..."
        super().__init__(msg)


class InvalidPath(CachetteError):
    error_type = "invalid-path"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Invalid model path: {path}")


class InsufficientMemory(CachetteError):
    error_type = "insufficient-memory"

    def __init__(self, available: int, required: int) -> None:
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient memory: {available // _MB} MB available, "
            f"{required // _MB} MB required to load model"
        )


__all__ = [
    "CachetteError",
    "NotDownloaded",
    "NotFound",
    "LoadFailed",
    "DownloadFailed",
    "StorageFailed",
    "QueryFailed",
    "InvalidResponse",
    "ParsingFailed",
    "InvalidPath",
    "InsufficientMemory",
]
