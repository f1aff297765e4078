"""Memory admission control + token budget tiers.

Available memory = total physical memory - engine active memory.

Token budget tiers by headroom after the model (GB):
    <= 8 → 512, (8, 16) → 2048, [16, 32) → 4096, otherwise → 8192
then clamped up to TOKEN_BUDGET_FLOOR, so only >= 32 GB headroom moves the
budget above the floor.

A load is admitted only while model size <= ADMISSION_RATIO * available.
"""
from __future__ import annotations

import logging

import psutil

from cachette.events import AdmissionRejected, emit
from cachette.llm.engine import InferenceEngine
from cachette.llm.exceptions import InsufficientMemory

GB = 1024 ** 3
TOKEN_BUDGET_FLOOR = 4096
ADMISSION_RATIO = 0.8

logger = logging.getLogger(__name__)


def total_memory() -> int:
    return int(psutil.virtual_memory().total)


def available_memory(engine: InferenceEngine | None = None) -> int:
    active = engine.active_memory_bytes() if engine is not None else 0
    return max(total_memory() - int(active), 0)


def tokens_for_available_memory(available: int, model_size_bytes: int) -> int:
    headroom = max(int(available) - int(model_size_bytes), 0) / GB
    if headroom <= 8:
        tier = 512
    elif headroom < 16:
        tier = 2048
    elif headroom < 32:
        tier = 4096
    else:
        tier = 8192
    return max(tier, TOKEN_BUDGET_FLOOR)


def recommended_token_budget(
    model_size_bytes: int, engine: InferenceEngine | None = None
) -> int:
    return tokens_for_available_memory(
        available_memory(engine), model_size_bytes
    )


def check_admission(available: int, model_size_bytes: int) -> None:
    """Raise InsufficientMemory when the model exceeds the safety margin."""
    if model_size_bytes > ADMISSION_RATIO * available:
        raise InsufficientMemory(available=available, required=model_size_bytes)


def admit_load(
    model_size_bytes: int,
    engine: InferenceEngine | None = None,
    model_id: str = "",
) -> None:
    available = available_memory(engine)
    try:
        check_admission(available, model_size_bytes)
    except InsufficientMemory:
        logger.warning(
            "admission rejected for %s: %d bytes required, %d available",
            model_id or "<unknown>", model_size_bytes, available,
        )
        emit(
            AdmissionRejected(
                model_id=model_id,
                available_bytes=available,
                required_bytes=model_size_bytes,
            )
        )
        raise


__all__ = [
    "GB",
    "TOKEN_BUDGET_FLOOR",
    "ADMISSION_RATIO",
    "total_memory",
    "available_memory",
    "tokens_for_available_memory",
    "recommended_token_budget",
    "check_admission",
    "admit_load",
]
