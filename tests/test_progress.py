import asyncio

import pytest

from app.services.progress import COMPLETE, ProgressTimer, progress_steps


def test_steps_end_exactly_at_complete():
    values = list(progress_steps(5))
    assert len(values) == 20
    assert values[0] == 5
    assert values[-1] == COMPLETE
    assert values == sorted(set(values))


def test_uneven_step_is_capped():
    assert list(progress_steps(30)) == [30, 60, 90, 100]


def test_step_must_be_positive():
    with pytest.raises(ValueError):
        list(progress_steps(0))


@pytest.mark.asyncio
async def test_timer_ticks_then_completes_once():
    ticks = []
    completed = []

    async def on_complete():
        completed.append(ticks[-1])

    timer = ProgressTimer(ticks.append, on_complete, step=25, interval=0)
    timer.start()
    await timer.wait()

    assert ticks == [25, 50, 75, 100]
    assert completed == [100]
    assert not timer.running


@pytest.mark.asyncio
async def test_cancelled_timer_never_completes():
    ticks = []
    completed = []

    async def on_complete():
        completed.append(True)

    timer = ProgressTimer(ticks.append, on_complete, step=5, interval=0.05)
    timer.start()
    await asyncio.sleep(0.01)
    assert timer.cancel() is True
    await timer.wait()

    assert completed == []
    assert len(ticks) < 20
    assert timer.cancel() is False


@pytest.mark.asyncio
async def test_timer_cannot_start_twice():
    timer = ProgressTimer(lambda _v: None, step=50, interval=0)
    timer.start()
    with pytest.raises(RuntimeError):
        timer.start()
    await timer.wait()
