"""Model registry: reference classification, layout, resident handles."""
from .paths import (  # noqa: F401
    CatalogId,
    LocalPath,
    ModelReference,
    classify,
    model_directory,
    model_id_from_directory,
)
from .records import ModelRecord  # noqa: F401
from .store import ModelRegistry  # noqa: F401

__all__ = [
    "CatalogId",
    "LocalPath",
    "ModelReference",
    "ModelRecord",
    "ModelRegistry",
    "classify",
    "model_directory",
    "model_id_from_directory",
]
