from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from brew_tally.config import Settings
from brew_tally.scheduler import (
    MonthlyBroadcastScheduler,
    broadcast_for_current_month,
    next_broadcast_at,
    seconds_until_next_broadcast,
)
from brew_tally.service import TallyService

from fakes import FakeLedger, FakeSlackClient

BERLIN = ZoneInfo("Europe/Berlin")


def _service(client: FakeSlackClient) -> TallyService:
    return TallyService(ledger=FakeLedger(), client=client, settings=Settings(), clock=lambda: datetime(2024, 5, 1, 9, 0))


def _wall(value: datetime) -> datetime:
    return value.replace(tzinfo=None)


def test_next_broadcast_is_first_of_next_month_at_hour() -> None:
    assert _wall(next_broadcast_at(datetime(2024, 5, 15, 13, 30), 9)) == datetime(2024, 6, 1, 9, 0)
    assert _wall(next_broadcast_at(datetime(2024, 12, 31, 23, 59), 9)) == datetime(2025, 1, 1, 9, 0)
    assert _wall(next_broadcast_at(datetime(2024, 1, 31, 8, 0), 7)) == datetime(2024, 2, 1, 7, 0)


def test_broadcast_on_the_first_before_the_hour_fires_same_day() -> None:
    now = datetime(2024, 7, 1, 8, 30, tzinfo=BERLIN)
    assert next_broadcast_at(now, 9, BERLIN) == datetime(2024, 7, 1, 9, 0, tzinfo=BERLIN)


def test_delay_is_positive_and_floored() -> None:
    assert seconds_until_next_broadcast(datetime(2024, 5, 31, 9, 0, tzinfo=BERLIN), 9, BERLIN) == 24 * 3600
    assert seconds_until_next_broadcast(datetime(2024, 5, 31, 8, 59, 59, 999999), 9) >= 1.0


def test_delay_across_dst_change_keeps_wall_clock_hour() -> None:
    # Berlin moves to summer time on 2024-03-31, so the gap is one hour short of the naive difference
    now = datetime(2024, 3, 15, 12, 0, tzinfo=BERLIN)
    fire = next_broadcast_at(now, 9, BERLIN)
    assert fire == datetime(2024, 4, 1, 9, 0, tzinfo=BERLIN)
    assert fire.astimezone(BERLIN).hour == 9
    assert seconds_until_next_broadcast(now, 9, BERLIN) == 1454400.0

    autumn = datetime(2024, 10, 20, 12, 0, tzinfo=BERLIN)
    assert next_broadcast_at(autumn, 9, "Europe/Berlin").astimezone(BERLIN).hour == 9
    assert seconds_until_next_broadcast(autumn, 9, BERLIN) == (11 * 24 + 21 + 1) * 3600


def test_broadcast_tolerates_one_failing_user(caplog) -> None:
    members = [
        {"id": "U1"},
        {"id": "U2"},
        {"id": "U3"},
        {"id": "UBOT", "is_bot": True},
        {"id": "UGONE", "deleted": True},
        {"id": "W0ENTERPRISE"},
    ]
    client = FakeSlackClient(members=members, fail_post_channels={"D-U2"})

    with caplog.at_level(logging.ERROR, logger="brew_tally.scheduler"):
        result = asyncio.run(broadcast_for_current_month(_service(client)))

    assert result.delivered == ["U1", "U3"]
    assert result.failed == ["U2"]
    errors = [r for r in caplog.records if r.name == "brew_tally.scheduler" and r.levelno >= logging.ERROR]
    assert len(errors) == 1
    assert "U2" in errors[0].getMessage()
    assert {c["channel"] for c in client.calls_to("chat_postMessage")} == {"D-U1", "D-U2", "D-U3"}


def test_broadcast_survives_directory_failure(caplog) -> None:
    class NoDirectory(FakeSlackClient):
        async def users_list(self, **kwargs):
            raise RuntimeError("users:read missing")

    with caplog.at_level(logging.ERROR, logger="brew_tally.scheduler"):
        result = asyncio.run(broadcast_for_current_month(_service(NoDirectory())))
    assert result.delivered == [] and result.failed == []
    assert len(caplog.records) == 1


def test_scheduler_registers_one_monthly_cron_job() -> None:
    scheduler = MonthlyBroadcastScheduler(_service(FakeSlackClient()), hour=9, timezone="Europe/Berlin")

    async def scenario() -> tuple[bool, datetime | None, bool]:
        scheduler.start()
        scheduler.start()
        started = scheduler.running
        next_run = scheduler.next_run_time()
        await scheduler.stop()
        return started, next_run, scheduler.running

    started, next_run, running = asyncio.run(scenario())
    assert started is True
    assert running is False
    assert next_run is not None
    wall = next_run.astimezone(BERLIN)
    assert (wall.day, wall.hour, wall.minute) == (1, 9, 0)
    assert len(scheduler.scheduler.get_jobs()) == 1


def test_stop_before_start_is_a_noop() -> None:
    scheduler = MonthlyBroadcastScheduler(_service(FakeSlackClient()), hour=9)
    asyncio.run(scheduler.stop())
    assert scheduler.running is False
