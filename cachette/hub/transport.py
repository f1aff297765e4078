"""HTTP transport for hub file downloads (plain GET, whole file)."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import httpx
from huggingface_hub import hf_hub_url

from cachette.config.schemas.core import DEFAULT_HUB_ENDPOINT

_CHUNK = 1024 * 1024


class TransportError(Exception):
    """Fetch failed; `status` set when the server answered."""

    def __init__(self, reason: str, status: int | None = None) -> None:
        self.reason = reason
        self.status = status
        super().__init__(reason)


class HubTransport:
    def __init__(
        self,
        endpoint: str = DEFAULT_HUB_ENDPOINT,
        revision: str = "main",
        timeout_s: float = 60.0,
        client: Optional[httpx.Client] = None,
        token: str | None = None,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.revision = revision
        self._headers: dict[str, str] = {}
        token = token or os.getenv("HF_TOKEN")
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(
            timeout=timeout_s, follow_redirects=True
        )

    def url_for(self, model_id: str, filename: str) -> str:
        return hf_hub_url(
            repo_id=model_id,
            filename=filename,
            revision=self.revision,
            endpoint=self.endpoint,
        )

    def fetch(self, model_id: str, filename: str, target: Path) -> int:
        """Stream `filename` into `target`; returns bytes written."""
        url = self.url_for(model_id, filename)
        written = 0
        try:
            with self._client.stream("GET", url, headers=self._headers) as resp:
                if not resp.is_success:
                    raise TransportError(
                        f"HTTP {resp.status_code}", status=resp.status_code
                    )
                with target.open("wb") as fh:
                    for chunk in resp.iter_bytes(_CHUNK):
                        fh.write(chunk)
                        written += len(chunk)
        except httpx.HTTPError as e:
            raise TransportError(f"{e.__class__.__name__}: {e}") from e
        return written

    def close(self) -> None:
        self._client.close()


__all__ = ["HubTransport", "TransportError"]
