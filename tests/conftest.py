"""Pytest configuration ensuring project root is importable.

Adds repository root (and src/) to sys.path explicitly to avoid
interpreter/path quirks. Shared fixtures: a fake inference engine, a hub
served by httpx.MockTransport, and a Runtime wired to both.
"""
from __future__ import annotations

import os
import sys
import threading
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import httpx  # noqa: E402

from cachette.config.schemas.core import DEFAULT_WEIGHTS_FILE  # noqa: E402
from cachette.llm.engine import InferenceEngine, ModelHandle  # noqa: E402

GB = 1024 ** 3


@pytest.fixture(autouse=True)
def _isolate_config_env(tmp_path, monkeypatch):  # noqa: D401
    """Ensure global config/env side effects do not leak between tests.

    - Point CACHETTE_CONFIG_DIR at an empty dir (defaults only)
    - Drop CACHETTE__* overrides from the outer environment
    - Clear aggregated config cache before and after
    """
    from cachette.config import clear_config_cache  # local import

    monkeypatch.setenv("CACHETTE_CONFIG_DIR", str(tmp_path / "cfg"))
    for key in list(os.environ):
        if key.startswith("CACHETTE__"):
            monkeypatch.delenv(key)
    monkeypatch.delenv("HF_TOKEN", raising=False)
    clear_config_cache()
    try:
        yield
    finally:
        clear_config_cache()


@pytest.fixture(autouse=True)
def _fixed_memory(monkeypatch):  # noqa: D401
    """Deterministic physical memory (64 GB) unless a test overrides it."""
    monkeypatch.setattr("cachette.memory.total_memory", lambda: 64 * GB)


class FakeEngine(InferenceEngine):
    """Lightweight engine: no weights, canned or echoed replies."""

    def __init__(self) -> None:
        self.materialize_calls = 0
        self.delay_s = 0.0
        self.load_error: Exception | None = None
        self.generate_error: Exception | None = None
        self.replies: list = []
        self.calls: list = []
        self.released: list[str] = []
        self.active_bytes = 0
        self._lock = threading.Lock()

    def active_memory_bytes(self) -> int:
        return self.active_bytes

    def materialize(self, key: str, directory: Path) -> ModelHandle:
        with self._lock:
            self.materialize_calls += 1
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.load_error is not None:
            raise self.load_error
        return ModelHandle(key=key, path=directory, size_bytes=0)

    def generate(self, handle, messages, temperature, max_tokens):  # noqa: D401
        self.calls.append(
            {
                "key": handle.key,
                "messages": list(messages),
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if self.generate_error is not None:
            raise self.generate_error
        if self.replies:
            return self.replies.pop(0)
        return f"echo: {messages[-1].content}"

    def release(self, handle: ModelHandle) -> None:
        self.released.append(handle.key)


class HubStub:
    """Serves files for any model id; `fail` maps filename → HTTP status."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {
            "config.json": b'{"model_type": "phi3"}',
            "tokenizer.json": b"{}",
            "tokenizer_config.json": b"{}",
            DEFAULT_WEIGHTS_FILE: b"\x00" * 2048,
        }
        self.fail: dict[str, int] = {}
        self.requests: list[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        name = request.url.path.rsplit("/", 1)[-1]
        if name in self.fail:
            return httpx.Response(self.fail[name])
        if name not in self.files:
            return httpx.Response(404)
        return httpx.Response(200, content=self.files[name])


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def hub() -> HubStub:
    return HubStub()


@pytest.fixture
def transport(hub):
    from cachette.hub import HubTransport

    client = httpx.Client(transport=httpx.MockTransport(hub.handler))
    t = HubTransport(client=client)
    yield t
    t.close()


@pytest.fixture
def models_dir(tmp_path) -> Path:
    return tmp_path / "models"


@pytest.fixture
def make_model(models_dir):
    """Create a downloaded-looking model directory; returns its path."""
    from cachette.registry.paths import model_directory

    def _make(model_id: str, size: int = 1024, root: Path | None = None,
              marker: bool = True) -> Path:
        d = model_directory(model_id, root or models_dir)
        d.mkdir(parents=True, exist_ok=True)
        if marker:
            (d / "config.json").write_text("{}", encoding="utf-8")
        (d / DEFAULT_WEIGHTS_FILE).write_bytes(b"\x00" * size)
        return d

    return _make


@pytest.fixture
def runtime(models_dir, fake_engine, transport):
    from cachette.config.loader import AggregatedConfig
    from cachette.config.schemas import StorageConfig
    from cachette.runtime import Runtime

    cfg = AggregatedConfig(storage=StorageConfig(models_dir=str(models_dir)))
    return Runtime.from_config(cfg, engine=fake_engine, transport=transport)
