"""/models routes: listing, info, download, unload, delete."""
from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from cachette import metrics
from cachette.runtime import Runtime
from cachette_app.api.deps import get_runtime

router = APIRouter(prefix="/models")


class DownloadRequest(BaseModel):  # noqa: D401
    model_id: str
    destination: str | None = None
    force: bool = False


@router.get("")
def list_models(directory: str | None = None,
                runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    records = runtime.list_available(directory)
    return {
        "models": [r.to_dict() | {"size": r.formatted_size} for r in records],
        "loaded": runtime.registry.loaded_keys(),
    }


@router.post("/download")
def download(body: DownloadRequest,
             runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    path = runtime.acquire(
        body.model_id, destination_root=body.destination, force=body.force
    )
    metrics.inc("api_downloads_total", {"force": str(body.force).lower()})
    return {"model_id": body.model_id, "path": str(path)}


@router.post("/unload-all")
def unload_all(runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    return {"unloaded": runtime.unload_all()}


@router.post("/{model_id:path}/unload")
def unload(model_id: str, runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    return {"model_id": model_id, "unloaded": runtime.unload(model_id)}


@router.get("/{model_id:path}")
def info(model_id: str, runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    record = runtime.model_info(model_id)
    return record.to_dict() | {
        "size": record.formatted_size,
        "loaded": model_id in runtime.registry.loaded_keys(),
    }


@router.delete("/{model_id:path}")
def delete(model_id: str, runtime: Runtime = Depends(get_runtime)):  # noqa: D401
    return {"model_id": model_id, "deleted": runtime.delete(model_id)}


__all__ = ["router"]
