import sys
import types
from pathlib import Path

import pytest

from cachette import metrics
from cachette.llm.llama_cpp_engine import LlamaCppEngine, find_weights
from cachette.llm.types import ChatMessage


class FakeLlama:
    instances: list = []
    fail_on_gpu = False

    def __init__(self, **kwargs):
        if FakeLlama.fail_on_gpu and kwargs.get("n_gpu_layers", 0) != 0:
            raise RuntimeError("CUDA error: out of memory")
        self.kwargs = kwargs
        self.closed = False
        FakeLlama.instances.append(self)

    def create_chat_completion(self, messages, temperature, max_tokens):
        self.last = (messages, temperature, max_tokens)
        return {"choices": [{"message": {"role": "assistant",
                                         "content": "hello"}}]}

    def close(self):
        self.closed = True


@pytest.fixture
def fake_llama(monkeypatch):
    FakeLlama.instances = []
    FakeLlama.fail_on_gpu = False
    mod = types.ModuleType("llama_cpp")
    mod.Llama = FakeLlama
    monkeypatch.setitem(sys.modules, "llama_cpp", mod)
    return FakeLlama


def _model_dir(tmp_path: Path) -> Path:
    d = tmp_path / "org_m"
    d.mkdir()
    (d / "config.json").write_text("{}", encoding="utf-8")
    (d / "b.gguf").write_bytes(b"\x00" * 10)
    (d / "a.gguf").write_bytes(b"\x00" * 300)
    return d


def test_find_weights_picks_first_gguf(tmp_path):
    assert find_weights(_model_dir(tmp_path)).name == "a.gguf"


def test_find_weights_prefers_configured_file(tmp_path):
    d = _model_dir(tmp_path)
    assert find_weights(d, "b.gguf").name == "b.gguf"
    assert find_weights(d, "missing.gguf").name == "a.gguf"
    assert find_weights(d, "model.safetensors").name == "a.gguf"


def test_find_weights_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        find_weights(tmp_path)


def test_materialize_generate_release(tmp_path, fake_llama):
    engine = LlamaCppEngine(n_ctx=2048, n_gpu_layers="auto", n_threads=4)
    handle = engine.materialize("org/m", _model_dir(tmp_path))
    llama = fake_llama.instances[0]
    assert llama.kwargs["n_ctx"] == 2048
    assert llama.kwargs["n_gpu_layers"] == -1
    assert llama.kwargs["n_threads"] == 4
    assert llama.kwargs["model_path"].endswith("a.gguf")
    assert engine.active_memory_bytes() == 300

    text = engine.generate(
        handle,
        [ChatMessage("system", "s"), ChatMessage("user", "hi")],
        0.2,
        64,
    )
    assert text == "hello"
    assert llama.last[0][1] == {"role": "user", "content": "hi"}
    assert llama.last[1:] == (0.2, 64)

    engine.release(handle)
    assert llama.closed
    assert engine.active_memory_bytes() == 0


def test_gpu_failure_falls_back_to_cpu(tmp_path, fake_llama):
    metrics.reset_for_tests()
    fake_llama.fail_on_gpu = True
    engine = LlamaCppEngine(n_gpu_layers=20)
    engine.materialize("org/m", _model_dir(tmp_path))
    assert fake_llama.instances[0].kwargs["n_gpu_layers"] == 0
    assert metrics.counter("llama_gpu_fallback_total", {"model": "org/m"}) == 1


def test_cpu_only_failure_propagates(tmp_path, monkeypatch):
    class Broken:
        def __init__(self, **kwargs):
            raise ValueError("bad gguf")

    mod = types.ModuleType("llama_cpp")
    mod.Llama = Broken
    monkeypatch.setitem(sys.modules, "llama_cpp", mod)
    with pytest.raises(ValueError):
        LlamaCppEngine(n_gpu_layers=0).materialize("org/m", _model_dir(tmp_path))


def test_registry_wraps_missing_weights(runtime, make_model, fake_llama):
    from cachette.llm.exceptions import LoadFailed

    d = make_model("org/m")
    for weights in d.glob("*.gguf"):
        weights.unlink()
    runtime.registry.engine = LlamaCppEngine()
    with pytest.raises(LoadFailed) as ei:
        runtime.load("org/m")
    assert isinstance(ei.value.cause, FileNotFoundError)


def test_default_config_downloads_loads_and_answers(
    models_dir, hub, transport, fake_llama
):
    from cachette.config.loader import AggregatedConfig
    from cachette.config.schemas import StorageConfig
    from cachette.runtime import Runtime

    cfg = AggregatedConfig(storage=StorageConfig(models_dir=str(models_dir)))
    rt = Runtime.from_config(cfg, transport=transport)
    assert isinstance(rt.registry.engine, LlamaCppEngine)

    assert rt.query("hello") == "hello"
    assert len(hub.requests) == 4
    llama = fake_llama.instances[0]
    assert llama.kwargs["model_path"].endswith(cfg.hub.weights_file)
    assert rt.registry.loaded_keys() == [cfg.llm.default_model]
    rt.unload_all()
    assert llama.closed
