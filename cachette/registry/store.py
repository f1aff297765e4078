"""Loaded-model registry.

Responsibilities:
 - Availability probes + directory layout (filesystem only, lock-free)
 - ensure_available → delegates to the Acquirer
 - load: single-flight materialization per key, admission check first
 - unload / unload_all / delete, listing and model info

Concurrency: the handle map and the in-flight map share one lock. A load
claims the key by inserting a Future under the lock, materializes outside
it, then publishes the handle. Late arrivals for the same key wait on the
Future; other keys never wait on it.
"""
from __future__ import annotations

import logging
import os
import shutil
import threading
from concurrent.futures import Future
from pathlib import Path
from time import perf_counter
from typing import Callable, Dict, List, Optional

from cachette.errors import map_exception, validate_error_type
from cachette.events import (
    ModelDeleted,
    ModelLoaded,
    ModelLoadFailed,
    ModelUnloaded,
    emit,
)
from cachette.hub.acquire import Acquirer, ProgressCallback
from cachette.llm.engine import InferenceEngine, ModelHandle
from cachette.llm.exceptions import (
    CachetteError,
    LoadFailed,
    NotDownloaded,
    NotFound,
    StorageFailed,
)
from cachette.memory import admit_load

from .paths import LocalPath, classify, model_directory
from .records import ModelRecord, directory_size, record_for

logger = logging.getLogger(__name__)


class ModelRegistry:
    def __init__(
        self,
        models_dir: str | Path,
        engine: InferenceEngine,
        acquirer: Acquirer,
    ) -> None:
        self.models_dir = Path(models_dir).expanduser()
        self.engine = engine
        self.acquirer = acquirer
        self._handles: Dict[str, ModelHandle] = {}
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()

    @property
    def marker_file(self) -> str:
        return self.acquirer.marker_file

    # --- filesystem probes -------------------------------------------------
    def model_directory(
        self, model_id: str, root: str | Path | None = None
    ) -> Path:
        return model_directory(model_id, root or self.models_dir)

    def has_marker(self, directory: Path) -> bool:
        return (directory / self.marker_file).is_file()

    def is_available(
        self, model_id: str, root: str | Path | None = None
    ) -> bool:
        return self.has_marker(self.model_directory(model_id, root))

    # --- acquisition -------------------------------------------------------
    def ensure_available(
        self,
        model_id: str,
        destination_root: str | Path | None = None,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Path:
        """Acquire `model_id` unless already present; returns its directory."""
        directory = self.model_directory(model_id, destination_root)
        if not force and self.has_marker(directory):
            return directory
        self.acquirer.acquire(
            model_id,
            directory,
            force=force,
            on_progress=on_progress,
            cancel=cancel,
        )
        return directory

    # --- loading -----------------------------------------------------------
    def load(self, id_or_path: str) -> ModelHandle:
        ref = classify(id_or_path)
        if isinstance(ref, LocalPath):
            return self.load_directory(
                ref.key, ref.path, lambda: NotFound(str(ref.path))
            )
        return self.load_directory(
            ref.key,
            self.model_directory(ref.id),
            lambda: NotDownloaded(ref.id),
        )

    def load_directory(
        self,
        key: str,
        directory: Path,
        missing: Callable[[], CachetteError],
    ) -> ModelHandle:
        with self._lock:
            handle = self._handles.get(key)
            if handle is not None:
                return handle
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future
        if not owner:
            return future.result()
        try:
            handle = self._materialize(key, directory, missing)
        except BaseException as e:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(e)
            raise
        with self._lock:
            self._handles[key] = handle
            self._inflight.pop(key, None)
        future.set_result(handle)
        return handle

    def _materialize(
        self,
        key: str,
        directory: Path,
        missing: Callable[[], CachetteError],
    ) -> ModelHandle:
        if not self.has_marker(directory):
            raise missing()
        size = directory_size(directory)
        admit_load(size, self.engine, model_id=key)
        start = perf_counter()
        try:
            handle = self.engine.materialize(key, directory)
        except Exception as e:  # noqa: BLE001
            code = validate_error_type(map_exception(e, "model.load"))
            emit(ModelLoadFailed(model_id=key, error_type=code,
                                 message=str(e)[:400]))
            logger.error("materialize failed for %s: %s", key, e)
            raise LoadFailed(e) from e
        load_ms = int((perf_counter() - start) * 1000)
        emit(
            ModelLoaded(
                model_id=key,
                path=str(directory),
                size_bytes=size,
                load_ms=load_ms,
            )
        )
        logger.info("loaded %s from %s in %d ms", key, directory, load_ms)
        return handle

    def loaded_keys(self) -> List[str]:
        with self._lock:
            return list(self._handles.keys())

    # --- eviction ----------------------------------------------------------
    def _release(self, handle: ModelHandle) -> None:
        try:
            self.engine.release(handle)
        except Exception:  # noqa: BLE001
            logger.warning("engine release failed for %s", handle.key,
                           exc_info=True)

    def unload(self, key: str, reason: str = "explicit_unload") -> bool:
        """Drop the resident handle; returns True if one was resident."""
        with self._lock:
            handle = self._handles.pop(key, None)
        if handle is None:
            return False
        self._release(handle)
        emit(ModelUnloaded(model_id=key, reason=reason))
        return True

    def unload_all(self) -> int:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            self._release(handle)
            emit(ModelUnloaded(model_id=handle.key, reason="unload_all"))
        return len(handles)

    def delete(self, model_id: str) -> bool:
        """Unload then remove the model directory; False if already gone."""
        self.unload(model_id, reason="delete")
        directory = self.model_directory(model_id)
        existed = directory.exists()
        if existed:
            try:
                shutil.rmtree(directory)
            except OSError as e:
                logger.error("delete failed for %s: %s", directory, e)
                raise StorageFailed(str(directory), e) from e
            logger.info("deleted %s", directory)
        emit(
            ModelDeleted(
                model_id=model_id, path=str(directory), existed=existed
            )
        )
        return existed

    # --- listing / info ----------------------------------------------------
    def list_available(
        self, directory: str | Path | None = None
    ) -> List[ModelRecord]:
        root = Path(directory).expanduser() if directory else self.models_dir
        if not root.is_dir():
            return []
        records: List[ModelRecord] = []
        try:
            with os.scandir(root) as it:
                for entry in it:
                    if not entry.is_dir():
                        continue
                    path = Path(entry.path)
                    if self.has_marker(path):
                        records.append(record_for(path))
        except OSError as e:
            raise StorageFailed(str(root), e) from e
        return records

    def model_info(self, id_or_path: str) -> ModelRecord:
        ref = classify(id_or_path)
        if isinstance(ref, LocalPath):
            path = ref.path
        else:
            path = self.model_directory(ref.id)
        if not path.is_dir():
            raise NotFound(str(path))
        try:
            return record_for(path)
        except OSError as e:
            raise StorageFailed(str(path), e) from e


__all__ = ["ModelRegistry"]
