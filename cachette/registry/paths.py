"""Model reference classification + directory layout.

No network access here: classification only probes the filesystem.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from cachette.llm.exceptions import InvalidPath

_SEPARATORS = {"/", os.sep} | ({os.altsep} if os.altsep else set())


@dataclass(frozen=True)
class LocalPath:
    path: Path

    @property
    def key(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class CatalogId:
    id: str

    @property
    def key(self) -> str:
        return self.id


ModelReference = LocalPath | CatalogId


def expand(reference: str) -> Path:
    if reference.startswith("~"):
        return Path(reference).expanduser()
    return Path(reference)


def classify(reference: str) -> ModelReference:
    """Return LocalPath when the reference exists on disk, else CatalogId."""
    if not isinstance(reference, str) or not reference.strip():
        raise InvalidPath(str(reference))
    reference = reference.strip()
    candidate = expand(reference)
    if candidate.exists():
        return LocalPath(candidate.resolve())
    return CatalogId(reference)


def directory_name(model_id: str) -> str:
    name = model_id
    for sep in _SEPARATORS:
        name = name.replace(sep, "_")
    return name


def model_directory(model_id: str, root: str | Path) -> Path:
    """`org/sub/model` → `<root>/org_sub_model`."""
    if not model_id.strip():
        raise InvalidPath(model_id)
    return Path(root).expanduser() / directory_name(model_id)


def model_id_from_directory(path: str | Path) -> str:
    # Lossy when the original id contained underscores.
    return Path(path).name.replace("_", "/")


__all__ = [
    "LocalPath",
    "CatalogId",
    "ModelReference",
    "classify",
    "expand",
    "directory_name",
    "model_directory",
    "model_id_from_directory",
]
