from __future__ import annotations

import logging
from datetime import datetime, tzinfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from .schemas import BroadcastResult, ControlsRequested
from .service import TallyService

logger = logging.getLogger(__name__)

BROADCAST_JOB_ID = "monthly_broadcast"


def monthly_trigger(hour: int = 9, timezone: tzinfo | str | None = None) -> CronTrigger:
    """Fires on the 1st of every month at ``hour:00`` wall-clock time.

    ``timezone=None`` means the machine's local zone.
    """
    return CronTrigger(day=1, hour=hour, minute=0, second=0, timezone=timezone)


def next_broadcast_at(now: datetime, hour: int = 9, timezone: tzinfo | str | None = None) -> datetime:
    if now.tzinfo is None:
        now = now.astimezone()
    return monthly_trigger(hour, timezone).get_next_fire_time(None, now)


def seconds_until_next_broadcast(now: datetime, hour: int = 9, timezone: tzinfo | str | None = None) -> float:
    if now.tzinfo is None:
        now = now.astimezone()
    return max(1.0, (next_broadcast_at(now, hour, timezone) - now).total_seconds())


async def list_member_ids(service: TallyService) -> list[str]:
    """Human, active workspace members from the users.list directory."""
    members: list[str] = []
    cursor: str | None = None
    while True:
        resp = await service.client.users_list(cursor=cursor, limit=200)
        for member in resp.get("members") or []:
            user_id = member.get("id") or ""
            if member.get("is_bot") or member.get("deleted") or not user_id.startswith("U"):
                continue
            members.append(user_id)
        cursor = (resp.get("response_metadata") or {}).get("next_cursor") or None
        if not cursor:
            return members


async def broadcast_for_current_month(service: TallyService) -> BroadcastResult:
    result = BroadcastResult()
    try:
        member_ids = await list_member_ids(service)
    except Exception:
        logger.exception("monthly broadcast failed listing users")
        return result

    for user_id in member_ids:
        try:
            await service.dispatch(user_id, ControlsRequested())
            result.delivered.append(user_id)
        except Exception:
            logger.exception("failed to DM user=%s", user_id)
            result.failed.append(user_id)

    logger.info("monthly broadcast done delivered=%s failed=%s", len(result.delivered), len(result.failed))
    return result


class MonthlyBroadcastScheduler:
    """Runs the monthly broadcast as a cron job on the running asyncio loop."""

    def __init__(self, service: TallyService, hour: int = 9, timezone: tzinfo | str | None = None) -> None:
        self.service = service
        self.scheduler = AsyncIOScheduler(timezone=timezone) if timezone else AsyncIOScheduler()
        # coalesce: a delayed firing runs once instead of catching up
        self.scheduler.add_job(
            broadcast_for_current_month,
            monthly_trigger(hour, timezone),
            args=[service],
            id=BROADCAST_JOB_ID,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=3600,
        )

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(BROADCAST_JOB_ID)
        return getattr(job, "next_run_time", None) if job is not None else None

    def start(self) -> None:
        if self.running:
            return
        self.scheduler.start()
        logger.info("monthly broadcast scheduled next_run=%s", self.next_run_time())

    async def stop(self) -> None:
        if self.running:
            self.scheduler.shutdown(wait=False)
