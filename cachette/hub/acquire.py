"""Acquisition engine: fetch the fixed model file set into a directory.

Summary:
* force → remove destination tree first.
* marker already present (and not force) → progress(1.0) once, no I/O.
* Otherwise each required file is skipped when present or streamed to a
  hidden temp file and moved into place with os.replace, so a partial file
  is never visible under its final name.
* progress((i+1)/total) after every file, skipped or fetched.
* First failure aborts with DownloadFailed; directory is left as-is.

Stateless: concurrent calls for the same id are not deduplicated here.
"""
from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Callable, NoReturn, Optional, Sequence

from cachette.config.schemas.core import HubConfig
from cachette.events import (
    AcquisitionCompleted,
    AcquisitionFailed,
    AcquisitionFileFinished,
    AcquisitionStarted,
    emit,
)
from cachette.llm.exceptions import DownloadFailed

from .transport import HubTransport, TransportError

ProgressCallback = Callable[[float], None]

DEFAULT_REQUIRED_FILES: tuple[str, ...] = HubConfig().required_files()

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcquisitionJob:
    model_id: str
    destination: Path
    force: bool
    required_files: tuple[str, ...]

    @property
    def marker(self) -> Path:
        return self.destination / self.required_files[0]


def _noop(_: float) -> None:
    return None


class Acquirer:
    def __init__(
        self,
        transport: HubTransport,
        required_files: Sequence[str] = DEFAULT_REQUIRED_FILES,
    ) -> None:
        if not required_files:
            raise ValueError("required_files cannot be empty")
        self._transport = transport
        self.required_files = tuple(required_files)

    @property
    def transport(self) -> HubTransport:
        return self._transport

    @property
    def marker_file(self) -> str:
        return self.required_files[0]

    def acquire(
        self,
        model_id: str,
        destination: str | Path,
        force: bool = False,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        job = AcquisitionJob(
            model_id=model_id,
            destination=Path(destination).expanduser(),
            force=force,
            required_files=self.required_files,
        )
        progress = on_progress or _noop
        start = perf_counter()

        if job.force and job.destination.exists():
            logger.info("force: removing %s", job.destination)
            try:
                shutil.rmtree(job.destination)
            except OSError as e:
                self._fail(job, str(job.destination), f"cleanup failed: {e}")

        if not job.force and job.marker.is_file():
            progress(1.0)
            emit(
                AcquisitionCompleted(
                    model_id=model_id,
                    destination=str(job.destination),
                    fetched=0,
                    skipped=len(job.required_files),
                    duration_ms=0,
                    already_present=True,
                )
            )
            return

        try:
            job.destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._fail(job, str(job.destination), f"mkdir failed: {e}")

        emit(
            AcquisitionStarted(
                model_id=model_id,
                destination=str(job.destination),
                force=job.force,
                files=len(job.required_files),
            )
        )
        total = len(job.required_files)
        fetched = skipped = 0
        for index, name in enumerate(job.required_files):
            if cancel is not None and cancel.is_set():
                self._fail(job, name, "cancelled")
            target = job.destination / name
            was_present = target.is_file()
            if was_present:
                skipped += 1
                size = 0
                logger.debug("skip %s (present)", target)
            else:
                size = self._fetch_atomic(job, name, target)
                fetched += 1
                logger.info("fetched %s/%s (%d bytes)", model_id, name, size)
            fraction = (index + 1) / total
            emit(
                AcquisitionFileFinished(
                    model_id=model_id,
                    file=name,
                    skipped=was_present,
                    bytes=size,
                    progress=fraction,
                )
            )
            progress(fraction)

        emit(
            AcquisitionCompleted(
                model_id=model_id,
                destination=str(job.destination),
                fetched=fetched,
                skipped=skipped,
                duration_ms=int((perf_counter() - start) * 1000),
            )
        )

    # helpers --------------------------------------------------------------
    def _fetch_atomic(self, job: AcquisitionJob, name: str, target: Path) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".part", dir=target.parent
        )
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            size = self._transport.fetch(job.model_id, name, tmp)
            os.replace(tmp, target)
        except TransportError as e:
            tmp.unlink(missing_ok=True)
            self._fail(job, name, e.reason)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            self._fail(job, name, f"{e.__class__.__name__}: {e}")
        return size

    def _fail(self, job: AcquisitionJob, name: str, reason: str) -> NoReturn:
        logger.warning(
            "acquisition of %s failed at %s: %s", job.model_id, name, reason
        )
        emit(AcquisitionFailed(model_id=job.model_id, file=name, reason=reason))
        raise DownloadFailed(name, reason)


__all__ = [
    "Acquirer",
    "AcquisitionJob",
    "DEFAULT_REQUIRED_FILES",
    "ProgressCallback",
]
