"""Configuration loading & validation.

Precedence (last wins): base.yaml → overrides.local.yaml → ENV
(CACHETTE__SECTION__KEY). The directory comes from CACHETTE_CONFIG_DIR and
missing files simply mean defaults. Unknown keys are rejected.
"""
from __future__ import annotations

import logging
import os
import pathlib
import threading
from functools import lru_cache
from typing import Any, Dict

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError

from cachette import metrics
from cachette.errors import validate_error_type

from .schemas.core import HubConfig, StorageConfig
from .schemas.llm import LLMConfig
from .schemas.observability import LoggingConfig

DEFAULT_CONFIG_DIR = "configs"
ENV_PREFIX = "CACHETTE__"

logger = logging.getLogger(__name__)


class AggregatedConfig(BaseModel):
    storage: StorageConfig = StorageConfig()
    hub: HubConfig = HubConfig()
    llm: LLMConfig = LLMConfig()
    logging: LoggingConfig = LoggingConfig()

    model_config = ConfigDict(extra="forbid")

    def models_dir(self) -> pathlib.Path:
        return pathlib.Path(self.storage.models_dir).expanduser()


class ConfigError(Exception):
    error_type = "config-invalid"


def _load_yaml_if_exists(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path.name}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path.name}: top level must be a mapping")
    return data


def _merge_dict(
    base: Dict[str, Any], override: Dict[str, Any]
) -> Dict[str, Any]:
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def _cast_env_value(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        return value


def _apply_env(cfg: Dict[str, Any]) -> None:
    prefix_len = len(ENV_PREFIX)
    for env_key, value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        path_parts = env_key[prefix_len:].lower().split("__")
        target = cfg
        for part in path_parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                target[part] = {}
            target = target[part]
        target[path_parts[-1]] = _cast_env_value(value)
        dotted_path = ".".join(path_parts)
        metrics.inc("env_override_total", {"path": dotted_path})
        logger.info("config env override path=%s source=env", dotted_path)


_lock = threading.Lock()


def _resolve_config_dir() -> pathlib.Path:
    """Resolve config directory each call honoring env var changes."""
    return pathlib.Path(os.getenv("CACHETTE_CONFIG_DIR", DEFAULT_CONFIG_DIR))


def _error_code(err: ValidationError) -> str:
    kinds = {e.get("type", "") for e in err.errors()}
    if any(k.startswith(("greater_than", "less_than")) for k in kinds):
        return validate_error_type("config-out-of-range")
    return validate_error_type("config-invalid")


@lru_cache(maxsize=1)
def get_config() -> AggregatedConfig:  # noqa: D401
    with _lock:
        cfg_dir = _resolve_config_dir()
        base_cfg = _load_yaml_if_exists(cfg_dir / "base.yaml")
        overrides_cfg = _load_yaml_if_exists(
            cfg_dir / "overrides.local.yaml"
        )
        merged = _merge_dict(base_cfg, overrides_cfg)
        _apply_env(merged)
        try:
            return AggregatedConfig.model_validate(merged)
        except ValidationError as e:
            code = _error_code(e)
            metrics.inc("config_validation_errors_total", {"code": code})
            raise ConfigError(f"config validation failed: {e}") from e


def clear_config_cache() -> None:
    """Clear cached config (primarily for tests)."""
    get_config.cache_clear()


def as_dict() -> Dict[str, Any]:
    return get_config().model_dump()
