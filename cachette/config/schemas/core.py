"""Storage + hub schemas."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_HUB_ENDPOINT = "https://huggingface.co"
# llama.cpp only loads GGUF, so the weights file must be one
DEFAULT_WEIGHTS_FILE = "qwen2.5-0.5b-instruct-q4_k_m.gguf"


class StorageConfig(BaseModel):
    models_dir: str = "~/.cache/cachette/models"

    model_config = ConfigDict(extra="forbid")


class HubConfig(BaseModel):
    endpoint: str = DEFAULT_HUB_ENDPOINT
    revision: str = "main"
    timeout_s: float = Field(60.0, gt=0)
    # marker_file doubles as the availability marker
    marker_file: str = "config.json"
    tokenizer_file: str = "tokenizer.json"
    tokenizer_config_file: str = "tokenizer_config.json"
    weights_file: str = DEFAULT_WEIGHTS_FILE

    model_config = ConfigDict(extra="forbid")

    @field_validator("weights_file")
    @classmethod
    def _gguf_weights(cls, v: str) -> str:  # noqa: D401
        if not v.endswith(".gguf"):
            raise ValueError("weights_file must be a .gguf file")
        return v

    @field_validator("endpoint")
    @classmethod
    def _strip_endpoint(cls, v: str) -> str:  # noqa: D401
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("endpoint must be an http(s) URL")
        return v

    def required_files(self) -> tuple[str, ...]:
        return (
            self.marker_file,
            self.tokenizer_file,
            self.tokenizer_config_file,
            self.weights_file,
        )
