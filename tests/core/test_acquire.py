import threading
from pathlib import Path

import httpx
import pytest

from cachette import metrics
from cachette.events import subscribe
from cachette.hub import Acquirer, HubTransport
from cachette.hub.acquire import DEFAULT_REQUIRED_FILES
from cachette.llm.exceptions import DownloadFailed

MODEL = "org/tiny-model"
FILES = list(DEFAULT_REQUIRED_FILES)
WEIGHTS = FILES[-1]


def _acquire(transport, dest: Path, **kw):
    progress: list[float] = []
    Acquirer(transport).acquire(MODEL, dest, on_progress=progress.append, **kw)
    return progress


def test_fresh_acquire_fetches_all_files(tmp_path, hub, transport):
    dest = tmp_path / "org_tiny-model"
    progress = _acquire(transport, dest)
    assert sorted(p.name for p in dest.iterdir()) == sorted(FILES)
    assert (dest / WEIGHTS).read_bytes() == hub.files[WEIGHTS]
    assert progress == [0.25, 0.5, 0.75, 1.0]
    assert hub.requests[0] == (
        "https://huggingface.co/org/tiny-model/resolve/main/config.json"
    )
    assert len(hub.requests) == 4


def test_present_marker_short_circuits(tmp_path, hub, transport):
    dest = tmp_path / "m"
    _acquire(transport, dest)
    hub.requests.clear()
    progress = _acquire(transport, dest)
    assert progress == [1.0]
    assert hub.requests == []


def test_force_removes_existing_tree(tmp_path, hub, transport):
    dest = tmp_path / "m"
    _acquire(transport, dest)
    (dest / "stale.bin").write_bytes(b"old")
    hub.requests.clear()
    progress = _acquire(transport, dest, force=True)
    assert not (dest / "stale.bin").exists()
    assert len(hub.requests) == 4
    assert progress[-1] == 1.0


def test_present_files_are_skipped_without_marker(tmp_path, hub, transport):
    dest = tmp_path / "m"
    dest.mkdir()
    (dest / "tokenizer.json").write_text("local", encoding="utf-8")
    progress = _acquire(transport, dest)
    assert len(hub.requests) == 3
    assert (dest / "tokenizer.json").read_text(encoding="utf-8") == "local"
    assert progress == [0.25, 0.5, 0.75, 1.0]


def test_http_error_names_file_and_leaves_no_partial(tmp_path, hub, transport):
    hub.fail[WEIGHTS] = 404
    dest = tmp_path / "m"
    with pytest.raises(DownloadFailed) as ei:
        _acquire(transport, dest)
    assert ei.value.file == WEIGHTS
    assert ei.value.reason == "HTTP 404"
    assert WEIGHTS in str(ei.value)
    assert not (dest / WEIGHTS).exists()
    assert (dest / "config.json").exists()
    assert not [p for p in dest.iterdir() if p.name.endswith(".part")]


def test_transport_exception_becomes_download_failed(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    t = HubTransport(client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(DownloadFailed) as ei:
        Acquirer(t).acquire(MODEL, tmp_path / "m")
    assert ei.value.file == "config.json"
    assert "ConnectError" in ei.value.reason


def test_cancel_stops_before_next_file(tmp_path, hub, transport):
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(DownloadFailed) as ei:
        _acquire(transport, tmp_path / "m", cancel=cancel)
    assert ei.value.reason == "cancelled"
    assert hub.requests == []


def test_acquisition_events_and_metrics(tmp_path, transport):
    metrics.reset_for_tests()
    seen = []
    unsub = subscribe(lambda name, payload: seen.append(name))
    try:
        _acquire(transport, tmp_path / "m")
    finally:
        unsub()
    assert seen[0] == "AcquisitionStarted"
    assert seen.count("AcquisitionFileFinished") == 4
    assert seen[-1] == "AcquisitionCompleted"
    assert metrics.counter("acquisition_files_total", {"result": "fetched"}) == 4


def test_bearer_token_from_env(tmp_path, monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(200, content=b"{}")

    monkeypatch.setenv("HF_TOKEN", "secret")
    t = HubTransport(
        client=httpx.Client(transport=httpx.MockTransport(handler))
    )
    assert t.fetch(MODEL, "config.json", tmp_path / "config.json") == 2
    assert seen["auth"] == "Bearer secret"


def test_marker_must_be_a_file(tmp_path, hub, transport):
    dest = tmp_path / "m"
    (dest / "config.json").mkdir(parents=True)
    with pytest.raises(DownloadFailed) as ei:
        _acquire(transport, dest)
    assert ei.value.file == "config.json"
    assert len(hub.requests) == 1
