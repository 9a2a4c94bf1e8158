import asyncio
from collections import Counter

import pytest

from scraper.runner import run_listings, run_sequential, run_tasks
from scraper.task import OutcomeStatus, TaskOutcome

from stubs import AVAILABLE_HTML, UNAVAILABLE_HTML, MemorySink, StubPage, StubSession, make_ctx, make_seed


def _pages():
    # mixed batch: available, unavailable, navigation timeout, available
    return {
        "1": StubPage(AVAILABLE_HTML.format(mileage="10 km"), delay=0.03),
        "2": StubPage(UNAVAILABLE_HTML, delay=0.01),
        "3": StubPage("timeout", delay=0.02),
        "4": StubPage(AVAILABLE_HTML.format(mileage="40 km")),
    }


def _seeds():
    return [make_seed(i) for i in range(1, 5)]


async def _run(tmp_path, *, concurrent: bool, max_pages: int = 3):
    sink = MemorySink()
    session = StubSession(_pages())
    ctx = make_ctx(tmp_path, session, sink, concurrent=concurrent, max_concurrent_pages=max_pages)
    outcomes = await run_listings(ctx, _seeds())
    return outcomes, sink, session


@pytest.mark.asyncio
async def test_sequential_and_concurrent_runs_are_equivalent(tmp_path):
    seq_out, seq_sink, _ = await _run(tmp_path / "seq", concurrent=False)
    con_out, con_sink, _ = await _run(tmp_path / "con", concurrent=True)

    assert Counter(o.key() for o in seq_out) == Counter(o.key() for o in con_out)
    assert seq_sink.value_lists() == con_sink.value_lists()

    statuses = Counter(o.status for o in con_out)
    assert statuses == {OutcomeStatus.WRITTEN: 2, OutcomeStatus.SKIPPED: 1, OutcomeStatus.FAILED: 1}


@pytest.mark.asyncio
async def test_outcomes_in_seed_order_each_seed_once(tmp_path):
    outcomes, _, session = await _run(tmp_path, concurrent=True)
    assert [o.seed.car_name for o in outcomes] == ["Car 1", "Car 2", "Car 3", "Car 4"]
    assert len(session.handed_out) == 4
    assert all(p.closed for p in session.handed_out)


@pytest.mark.asyncio
async def test_failing_task_does_not_affect_siblings(tmp_path):
    outcomes, sink, _ = await _run(tmp_path, concurrent=True)
    by_name = {o.seed.car_name: o for o in outcomes}
    assert by_name["Car 3"].status is OutcomeStatus.FAILED
    assert by_name["Car 1"].status is OutcomeStatus.WRITTEN
    assert by_name["Car 4"].status is OutcomeStatus.WRITTEN
    assert sorted(r["mileage"] for r in sink.rows) == ["10 km", "40 km"]


@pytest.mark.asyncio
async def test_sequential_holds_one_page_at_a_time(tmp_path):
    _, _, session = await _run(tmp_path, concurrent=False, max_pages=3)
    assert session.peak_open == 1


@pytest.mark.asyncio
async def test_run_tasks_never_exceeds_max_in_flight():
    in_flight = 0
    peak = 0
    seeds = [make_seed(i) for i in range(12)]

    async def task_fn(seed):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005 * (seed_index(seed) % 3 + 1))
        in_flight -= 1
        return TaskOutcome(seed=seed, status=OutcomeStatus.WRITTEN)

    outcomes = await run_tasks(seeds, 4, task_fn)

    assert peak == 4
    assert [o.seed for o in outcomes] == seeds


def seed_index(seed):
    return int(seed.car_name.split()[-1])


@pytest.mark.asyncio
async def test_escaping_exception_becomes_failed_outcome():
    seeds = [make_seed(1), make_seed(2)]

    async def task_fn(seed):
        if seed.car_name == "Car 1":
            raise KeyError("boom")
        return TaskOutcome(seed=seed, status=OutcomeStatus.WRITTEN)

    for runner in (lambda fn: run_tasks(seeds, 2, fn), lambda fn: run_sequential(seeds, fn)):
        outcomes = await runner(task_fn)
        assert [o.status for o in outcomes] == [OutcomeStatus.FAILED, OutcomeStatus.WRITTEN]
        assert outcomes[0].message.startswith("KeyError")


@pytest.mark.asyncio
async def test_run_tasks_rejects_zero_window():
    with pytest.raises(ValueError):
        await run_tasks([make_seed(1)], 0, None)


@pytest.mark.asyncio
async def test_empty_seed_list():
    async def task_fn(seed):
        raise AssertionError("never called")

    assert await run_tasks([], 3, task_fn) == []
    assert await run_sequential([], task_fn) == []


def test_screenshot_path_is_named_after_listing(tmp_path):
    ctx = make_ctx(tmp_path, StubSession({}), MemorySink())
    path = ctx.screenshot_path(make_seed(3, car_name="Audi A4 / Avant"))
    assert path.parent == tmp_path / "screenshots"
    assert path.name.startswith("fatal_error_audi-a4-avant_")
    assert path.suffix == ".png"
