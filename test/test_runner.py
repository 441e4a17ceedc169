import threading

import pytest

from paperlib.grid_straighten import generate_regular_grid, straighten
from paperlib.runner import CorrectionCancelled, CorrectionRunner, check_cancelled


@pytest.mark.unit
def test_check_cancelled():
    check_cancelled(None, "warp")
    event = threading.Event()
    check_cancelled(event, "warp")

    event.set()
    with pytest.raises(CorrectionCancelled) as excinfo:
        check_cancelled(event, "warp")
    assert excinfo.value.stage == "warp"
    assert "warp" in str(excinfo.value)


@pytest.mark.unit
def test_submit_plain_function():
    with CorrectionRunner(max_workers=1) as runner:
        future = runner.submit(pow, 2, 10)
        assert future.result(timeout=5) == 1024


@pytest.mark.unit
def test_submit_injects_cancel_event():
    seen = []

    def job(value, cancel=None):
        seen.append(cancel)
        return value

    with CorrectionRunner(max_workers=1) as runner:
        assert runner.submit(job, 3).result(timeout=5) == 3

        own = threading.Event()
        assert runner.submit(job, 4, cancel=own).result(timeout=5) == 4

    assert isinstance(seen[0], threading.Event)
    assert seen[1] is own


@pytest.mark.unit
def test_cancel_running_correction():
    started = threading.Event()
    release = threading.Event()

    def job(cancel=None):
        started.set()
        release.wait(5)
        try:
            check_cancelled(cancel, "warp")
        except CorrectionCancelled:
            return None
        return "done"

    with CorrectionRunner(max_workers=1) as runner:
        future = runner.submit(job)
        assert started.wait(5)
        runner.cancel(future)
        release.set()
        assert future.result(timeout=5) is None


@pytest.mark.unit
def test_runs_corrections_in_background(fake_ops):
    grid = generate_regular_grid(200, 150, 3, 3)

    with CorrectionRunner() as runner:
        future = runner.submit(straighten, "page.png", grid, 3, 3, 200, 150, 2.0, ops=fake_ops)
        result = future.result(timeout=5)

    assert result.shape[:2] == (300, 400)
    assert len(fake_ops.warp_calls('polynomial')) == 1
