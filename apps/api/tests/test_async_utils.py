import asyncio

import anyio
import pytest

from supportdesk.core.async_utils import DetachedTaskRunner


async def _sample(results: list) -> str:
    await anyio.sleep(0)
    results.append("ok")
    return "ok"


async def _boom() -> None:
    await anyio.sleep(0)
    raise RuntimeError("boom")


@pytest.mark.asyncio
async def test_spawn_from_worker_thread_schedules_on_loop(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _fail_run(*_args: object, **_kwargs: object) -> None:
        pytest.fail("asyncio.run should not be used in request threads")

    monkeypatch.setattr(asyncio, "run", _fail_run)
    runner = DetachedTaskRunner()
    results: list = []

    def _call():
        return runner.spawn(_sample(results), name="sample")

    task = await anyio.to_thread.run_sync(_call)
    assert isinstance(task, asyncio.Task)
    await runner.drain(timeout=1)
    assert results == ["ok"]


def test_spawn_without_loop_runs_inline() -> None:
    runner = DetachedTaskRunner()
    results: list = []

    assert runner.spawn(_sample(results), name="inline") is None
    assert results == ["ok"]

    assert runner.spawn(_boom(), name="inline-failure", context={"ticket_id": "t-1"}) is None
    assert runner.failures[-1].name == "inline-failure"


@pytest.mark.asyncio
async def test_failures_are_recorded_and_listeners_notified() -> None:
    runner = DetachedTaskRunner()
    seen = []

    def _broken_listener(failure):
        raise ValueError("listener bug")

    runner.add_listener(_broken_listener)
    runner.add_listener(seen.append)

    runner.spawn(_boom(), name="boom", context={"ticket_id": "t-1"})
    await runner.drain(timeout=1)

    assert runner.pending == 0
    assert [f.name for f in runner.failures] == ["boom"]
    assert seen[0].context == {"ticket_id": "t-1"}
    assert str(seen[0].error) == "boom"

    runner.remove_listener(seen.append)
    runner.spawn(_boom(), name="boom-2")
    await runner.drain(timeout=1)
    assert len(seen) == 1
