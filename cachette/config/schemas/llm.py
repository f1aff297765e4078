"""LLM config schema.

Query defaults plus llama.cpp materialization knobs. No side effects.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_MODEL = "Qwen/Qwen2.5-0.5B-Instruct-GGUF"
DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Be concise and direct in your responses."
)


class LLMConfig(BaseModel):
    engine: str = "llama_cpp"
    default_model: str = DEFAULT_MODEL
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = 0.7
    structured_temperature: float = 0.3
    n_ctx: int = 4096
    n_gpu_layers: str | int = "auto"
    n_threads: int | None = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("temperature", "structured_temperature")
    @classmethod
    def _temp_range(cls, v: float) -> float:  # noqa: D401
        if not (0 <= v <= 2):
            raise ValueError("temperature out of range 0..2")
        return v

    @field_validator("n_ctx")
    @classmethod
    def _n_ctx_positive(cls, v: int) -> int:  # noqa: D401
        if v <= 0:
            raise ValueError("n_ctx must be >0")
        return v

    @field_validator("engine")
    @classmethod
    def _known_engine(cls, v: str) -> str:  # noqa: D401
        if v != "llama_cpp":
            raise ValueError(f"unsupported engine '{v}'")
        return v
