"""Central error taxonomy codes.

Every `CachetteError` carries one of these codes; events and API payloads
report the code instead of free-form exception names.
"""
from __future__ import annotations

_ALLOWED_ERROR_TYPES = {
    # model.resolve
    "not-downloaded",
    "not-found",
    "invalid-path",
    # model.load
    "load-failed",
    "insufficient-memory",
    # acquisition
    "download-failed",
    # storage
    "storage-failed",
    # generation
    "query-failed",
    "invalid-response",
    "parsing-failed",
    # config
    "config-invalid",
    "config-out-of-range",
    # infra
    "internal",
}


def validate_error_type(code: str) -> str:
    assert (
        code in _ALLOWED_ERROR_TYPES
    ), f"Unknown error_type '{code}' (not in taxonomy)"
    return code


def map_exception(e: BaseException, phase: str) -> str:
    """Map an arbitrary exception to a taxonomy code for `phase`.

    Taxonomy errors keep their own code; anything else is classified by the
    phase it escaped from.
    """
    code = getattr(e, "error_type", None)
    if isinstance(code, str) and code in _ALLOWED_ERROR_TYPES:
        return code
    if phase == "model.load":
        if isinstance(e, FileNotFoundError):
            return "not-found"
        if isinstance(e, MemoryError):
            return "insufficient-memory"
        return "load-failed"
    if phase == "acquisition":
        return "download-failed"
    if phase == "storage":
        return "storage-failed"
    if phase == "generation":
        return "query-failed"
    return "internal"


__all__ = ["validate_error_type", "map_exception"]
