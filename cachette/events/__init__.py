"""Event dataclasses + any-subscriber bridge.

Events are forwarded to `cachette.eventbus` (per-event subscriptions) and
to any-subscribers registered with `on()` / `subscribe()`, which receive
every event as handler(name, payload). A built-in collector turns events
into metrics.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import RLock
from time import time
from typing import Any, Callable, Dict, List

from cachette import metrics as _metrics
from cachette.eventbus import emit as _emit_bus

EventHandler = Callable[[str, Dict[str, Any]], None]


@dataclass(slots=True)
class BaseEvent:
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        data = asdict(self)
        data["ts"] = data.get("ts") or time()
        return data


# --- acquisition ---------------------------------------------------------
@dataclass(slots=True)
class AcquisitionStarted(BaseEvent):
    model_id: str
    destination: str
    force: bool
    files: int


@dataclass(slots=True)
class AcquisitionFileFinished(BaseEvent):
    model_id: str
    file: str
    skipped: bool
    bytes: int
    progress: float


@dataclass(slots=True)
class AcquisitionCompleted(BaseEvent):
    model_id: str
    destination: str
    fetched: int
    skipped: int
    duration_ms: int
    already_present: bool = False


@dataclass(slots=True)
class AcquisitionFailed(BaseEvent):
    model_id: str
    file: str
    reason: str
    error_type: str = "download-failed"


# --- registry ------------------------------------------------------------
@dataclass(slots=True)
class AdmissionRejected(BaseEvent):
    model_id: str
    available_bytes: int
    required_bytes: int


@dataclass(slots=True)
class ModelLoaded(BaseEvent):
    model_id: str
    path: str
    size_bytes: int
    load_ms: int


@dataclass(slots=True)
class ModelLoadFailed(BaseEvent):
    model_id: str
    error_type: str
    message: str | None = None


@dataclass(slots=True)
class ModelUnloaded(BaseEvent):
    model_id: str
    reason: str  # explicit_unload|unload_all|delete


@dataclass(slots=True)
class ModelDeleted(BaseEvent):
    model_id: str
    path: str
    existed: bool


# --- generation ----------------------------------------------------------
@dataclass(slots=True)
class GenerationStarted(BaseEvent):
    request_id: str
    model_id: str
    temperature: float
    token_budget: int
    turns: int
    structured: bool = False


@dataclass(slots=True)
class GenerationCompleted(BaseEvent):
    request_id: str
    model_id: str
    status: str  # ok|error
    latency_ms: int
    approx_tokens: int
    error_type: str | None = None
    message: str | None = None


@dataclass(slots=True)
class StructuredDecodeFailed(BaseEvent):
    request_id: str
    model_id: str
    attempt: int
    reason: str
    excerpt: str


_ANY_SUBS: List[EventHandler] = []
_SUBS_LOCK = RLock()


def _metrics_collector(
    name: str, payload: Dict[str, Any]
) -> None:  # noqa: D401
    if name == "AcquisitionFileFinished":
        result = "skipped" if payload.get("skipped") else "fetched"
        _metrics.inc("acquisition_files_total", {"result": result})
        if not payload.get("skipped"):
            _metrics.inc(
                "acquisition_bytes_total", value=payload.get("bytes", 0)
            )
    elif name == "AcquisitionFailed":
        _metrics.inc(
            "acquisition_failures_total",
            {"reason": payload.get("reason", "unknown")},
        )
    elif name == "AdmissionRejected":
        _metrics.inc("admission_rejected_total")
    elif name == "ModelLoaded":
        _metrics.inc("model_loads_total", {"status": "ok"})
        _metrics.observe("model_load_ms", payload.get("load_ms", 0))
    elif name == "ModelLoadFailed":
        _metrics.inc(
            "model_loads_total",
            {"status": payload.get("error_type", "error")},
        )
    elif name == "ModelUnloaded":
        _metrics.inc(
            "model_unloads_total",
            {"reason": payload.get("reason", "unknown")},
        )
    elif name == "GenerationCompleted":
        _metrics.inc(
            "generations_total", {"status": payload.get("status")}
        )
        _metrics.observe(
            "generation_latency_ms", payload.get("latency_ms", 0)
        )
    elif name == "StructuredDecodeFailed":
        _metrics.inc("structured_decode_failures_total")


_ANY_SUBS.append(_metrics_collector)


def emit(ev: BaseEvent) -> None:
    name = ev.__class__.__name__
    payload = ev.to_event()
    _emit_bus(name, payload)
    with _SUBS_LOCK:
        handlers = list(_ANY_SUBS)
    for h in handlers:
        try:
            h(name, dict(payload))
        except Exception:  # noqa: BLE001
            _metrics.inc("handler_exceptions_total", {"event": name})


def on(handler: EventHandler) -> None:
    with _SUBS_LOCK:
        _ANY_SUBS.append(handler)


def subscribe(handler: EventHandler) -> Callable[[], None]:
    on(handler)

    def _unsub() -> None:  # noqa: D401
        with _SUBS_LOCK:
            try:
                _ANY_SUBS.remove(handler)
            except ValueError:
                pass

    return _unsub


def reset_listeners_for_tests() -> None:  # pragma: no cover
    with _SUBS_LOCK:
        _ANY_SUBS.clear()
        _ANY_SUBS.append(_metrics_collector)


__all__ = [
    "emit",
    "on",
    "subscribe",
    "reset_listeners_for_tests",
    "AcquisitionStarted",
    "AcquisitionFileFinished",
    "AcquisitionCompleted",
    "AcquisitionFailed",
    "AdmissionRejected",
    "ModelLoaded",
    "ModelLoadFailed",
    "ModelUnloaded",
    "ModelDeleted",
    "GenerationStarted",
    "GenerationCompleted",
    "StructuredDecodeFailed",
]
