import threading
import time

from cachette.llm.exceptions import LoadFailed


def _run_workers(fn, n=8):
    results, errors = [], []

    def worker():
        try:
            results.append(fn())
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_concurrent_load_single_materialization(runtime, make_model, fake_engine):
    make_model("org/m")
    fake_engine.delay_s = 0.2

    start = time.time()
    handles, errors = _run_workers(lambda: runtime.load("org/m"))
    elapsed = time.time() - start

    assert not errors, f"Errors during concurrent load: {errors}"
    assert len(handles) == 8
    first = handles[0]
    assert all(h is first for h in handles), (
        "Multiple handles created under concurrency"
    )
    assert fake_engine.materialize_calls == 1
    assert elapsed < 5, f"Concurrent load unexpectedly slow: {elapsed}s"


def test_concurrent_failure_shared_by_waiters(runtime, make_model, fake_engine):
    make_model("org/m")
    fake_engine.delay_s = 0.2
    fake_engine.load_error = RuntimeError("no gpu")

    handles, errors = _run_workers(lambda: runtime.load("org/m"))

    assert handles == []
    assert len(errors) == 8
    assert all(isinstance(e, LoadFailed) for e in errors)
    # every caller that arrived during the in-flight load shares its outcome
    assert fake_engine.materialize_calls < 8
    assert runtime.registry.loaded_keys() == []


def test_different_keys_do_not_block(runtime, make_model, fake_engine):
    make_model("org/a")
    make_model("org/b")
    original = fake_engine.materialize
    gate = threading.Event()

    def slow_for_a(key, directory):
        if key == "org/a":
            gate.wait(5)
        return original(key, directory)

    fake_engine.materialize = slow_for_a
    t = threading.Thread(target=runtime.load, args=("org/a",))
    t.start()
    try:
        handle_b = runtime.load("org/b")
        assert handle_b.key == "org/b"
        assert "org/a" not in runtime.registry.loaded_keys()
    finally:
        gate.set()
        t.join()
    assert sorted(runtime.registry.loaded_keys()) == ["org/a", "org/b"]
