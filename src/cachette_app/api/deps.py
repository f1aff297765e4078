"""Request-scoped access to the process Runtime."""
from __future__ import annotations

import threading

from fastapi import Request

from cachette.runtime import Runtime

_init_lock = threading.Lock()


def get_runtime(request: Request) -> Runtime:
    state = request.app.state
    runtime = getattr(state, "runtime", None)
    if runtime is None:
        with _init_lock:
            runtime = getattr(state, "runtime", None)
            if runtime is None:
                runtime = Runtime.from_config()
                state.runtime = runtime
    return runtime


__all__ = ["get_runtime"]
