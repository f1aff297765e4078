from pathlib import Path

import pytest

from cachette import metrics
from cachette.config import ConfigError, as_dict, clear_config_cache, get_config
from cachette.config.schemas.core import DEFAULT_WEIGHTS_FILE
from cachette.config.schemas.llm import DEFAULT_MODEL


def _write_config(tmp_path: Path, monkeypatch, base: str, local: str = "") -> None:
    cfg_dir = tmp_path / "conf"
    cfg_dir.mkdir()
    (cfg_dir / "base.yaml").write_text(base, encoding="utf-8")
    if local:
        (cfg_dir / "overrides.local.yaml").write_text(local, encoding="utf-8")
    monkeypatch.setenv("CACHETTE_CONFIG_DIR", str(cfg_dir))
    clear_config_cache()


def test_defaults_without_files():
    cfg = get_config()
    assert cfg.llm.default_model == DEFAULT_MODEL
    assert cfg.llm.temperature == 0.7
    assert cfg.llm.structured_temperature == 0.3
    assert cfg.hub.required_files() == (
        "config.json", "tokenizer.json", "tokenizer_config.json",
        DEFAULT_WEIGHTS_FILE,
    )
    assert DEFAULT_WEIGHTS_FILE.endswith(".gguf")
    assert cfg.models_dir().name == "models"


def test_local_overrides_win(tmp_path, monkeypatch):
    _write_config(
        tmp_path, monkeypatch,
        "llm:\n  temperature: 0.5\n  n_ctx: 2048\n",
        "llm:\n  temperature: 0.9\n",
    )
    cfg = get_config()
    assert cfg.llm.temperature == 0.9
    assert cfg.llm.n_ctx == 2048


def test_get_config_is_cached(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch, "llm:\n  temperature: 0.5\n")
    assert get_config() is get_config()


def test_unknown_key_rejected(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch, "llm:\n  unknown_field: 123\n")
    with pytest.raises(ConfigError):
        get_config()


def test_unknown_section_rejected(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch, "emotion: {}\n")
    with pytest.raises(ConfigError):
        get_config()


def test_invalid_yaml(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch, "llm: [unclosed\n")
    with pytest.raises(ConfigError):
        get_config()


def test_env_override_metric(monkeypatch):
    metrics.reset_for_tests()
    monkeypatch.setenv("CACHETTE__LLM__TEMPERATURE", "1.5")
    monkeypatch.setenv("CACHETTE__STORAGE__MODELS_DIR", "/srv/models")
    cfg = as_dict()
    assert cfg["llm"]["temperature"] == 1.5
    assert cfg["storage"]["models_dir"] == "/srv/models"
    assert metrics.counter(
        "env_override_total", {"path": "llm.temperature"}
    ) == 1


def test_out_of_range_counted(monkeypatch):
    metrics.reset_for_tests()
    monkeypatch.setenv("CACHETTE__HUB__TIMEOUT_S", "0")
    with pytest.raises(ConfigError):
        get_config()
    assert metrics.counter(
        "config_validation_errors_total", {"code": "config-out-of-range"}
    ) == 1


def test_invalid_value_counted(monkeypatch):
    metrics.reset_for_tests()
    monkeypatch.setenv("CACHETTE__LLM__TEMPERATURE", "5")
    with pytest.raises(ConfigError):
        get_config()
    assert metrics.counter(
        "config_validation_errors_total", {"code": "config-invalid"}
    ) == 1


def test_hub_endpoint_normalized(monkeypatch):
    monkeypatch.setenv("CACHETTE__HUB__ENDPOINT", "https://mirror.example/")
    assert get_config().hub.endpoint == "https://mirror.example"
    clear_config_cache()
    monkeypatch.setenv("CACHETTE__HUB__ENDPOINT", "ftp://mirror.example")
    with pytest.raises(ConfigError):
        get_config()


def test_non_gguf_weights_rejected(monkeypatch):
    monkeypatch.setenv("CACHETTE__HUB__WEIGHTS_FILE", "model.safetensors")
    with pytest.raises(ConfigError):
        get_config()
