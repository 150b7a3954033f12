import pytest

from epg_aggregator.services.scheduler_service import WarmupScheduler


async def noop():
    return None


def test_not_started_without_cron():
    scheduler = WarmupScheduler(noop, None)

    scheduler.start()

    assert not scheduler.running
    assert scheduler.get_next_run_time() is None


@pytest.mark.asyncio
async def test_cron_schedules_warmup_job():
    scheduler = WarmupScheduler(noop, "*/20 * * * *")

    scheduler.start()
    try:
        assert scheduler.running
        next_run = scheduler.get_next_run_time()
        assert next_run is not None
        assert next_run.minute % 20 == 0
    finally:
        scheduler.shutdown()

    assert not scheduler.running


@pytest.mark.asyncio
async def test_failed_warmup_is_logged_not_raised(caplog):
    async def broken():
        raise RuntimeError("upstream exploded")

    scheduler = WarmupScheduler(broken, "*/20 * * * *")

    await scheduler._warmup_job()

    assert "upstream exploded" in caplog.text
