from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from slack_bolt.adapter.fastapi.async_handler import AsyncSlackRequestHandler
from slack_bolt.async_app import AsyncApp
from slack_sdk.web.async_client import AsyncWebClient

from .config import Settings, settings as default_settings
from .handlers import InteractionHandlers
from .ledger import GoogleSheetsLedger
from .scheduler import MonthlyBroadcastScheduler
from .service import TallyService

logger = logging.getLogger(__name__)


def build_service(settings: Settings) -> TallyService:
    client = AsyncWebClient(token=settings.slack_bot_token or None)
    return TallyService(ledger=GoogleSheetsLedger.from_settings(settings), client=client, settings=settings)


def create_app(settings: Settings = default_settings, service: TallyService | None = None) -> FastAPI:
    for issue in settings.validate():
        logger.warning(issue)

    service = service or build_service(settings)
    scheduler = MonthlyBroadcastScheduler(
        service, hour=settings.broadcast_hour, timezone=settings.broadcast_timezone or None
    )

    @asynccontextmanager
    async def lifespan(api: FastAPI) -> AsyncIterator[None]:
        if settings.slack_configured:
            await service.resolve_bot_identity()
            scheduler.start()
        logger.info("☕ Tea/Coffee Bot is running!")
        try:
            yield
        finally:
            await scheduler.stop()

    api = FastAPI(title="Brew Tally", version="0.1.0", lifespan=lifespan)
    api.state.service = service
    api.state.scheduler = scheduler

    @api.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "ts": datetime.now(timezone.utc).isoformat()}

    if settings.slack_configured:
        bolt = AsyncApp(client=service.client, signing_secret=settings.slack_signing_secret)
        InteractionHandlers(service).register(bolt)
        handler = AsyncSlackRequestHandler(bolt)

        @api.post("/slack/events")
        async def slack_events(req: Request) -> Any:
            return await handler.handle(req)

    else:
        logger.warning("Slack credentials missing; /slack/events is not mounted and no broadcast is scheduled.")

    return api


def run() -> None:
    import uvicorn

    logging.basicConfig(
        level=default_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    uvicorn.run(create_app(), host="0.0.0.0", port=default_settings.port)


if __name__ == "__main__":
    run()
