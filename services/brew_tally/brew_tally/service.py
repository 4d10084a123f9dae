from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from .blocks import bill_text, build_bill_blocks, build_control_blocks, control_text
from .config import Settings, settings as default_settings
from .ledger import GoogleSheetsLedger
from .schemas import (
    BroadcastResult,
    ChoiceKind,
    ChoiceMade,
    InteractionEvent,
    LedgerRow,
    MessageRef,
    MonthlySummary,
    PayAcknowledged,
    SettlementToggled,
    UndoRequested,
)
from .state import StateStore
from .summary import global_monthly_summary, month_key, month_label, monthly_summary_for

logger = logging.getLogger(__name__)


class TallyService:
    def __init__(
        self,
        ledger: GoogleSheetsLedger,
        client: AsyncWebClient,
        state: StateStore | None = None,
        settings: Settings = default_settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ledger = ledger
        self.client = client
        self.state = state or StateStore()
        self.settings = settings
        self._clock = clock or datetime.now

    def now(self) -> datetime:
        return self._clock()

    async def resolve_bot_identity(self) -> str | None:
        try:
            auth = await self.client.auth_test()
            self.state.bot_user_id = auth.get("user_id") or None
        except Exception as exc:
            logger.warning("could not determine bot user id via auth.test error=%s", exc)
        return self.state.bot_user_id

    async def display_name(self, user_id: str) -> str:
        try:
            info = await self.client.users_info(user=user_id)
        except Exception:
            return user_id
        user = info.get("user") or {}
        profile = user.get("profile") or {}
        return profile.get("display_name") or profile.get("real_name") or user.get("name") or user_id

    async def record_choice(self, user_id: str, kind: ChoiceKind) -> LedgerRow:
        self.state.increment(user_id, kind)
        row = LedgerRow(
            user_id=user_id,
            user_name=await self.display_name(user_id),
            date=self.now().astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            choice=kind.value,
            price=self.settings.price_for(kind.value),
        )
        await self.ledger.append(row)
        logger.info("choice recorded user=%s choice=%s price=%s", user_id, kind.value, row.price)
        return row

    async def undo_last_choice(self, user_id: str) -> LedgerRow | None:
        rows = await self.ledger.read_all()
        last_index = next(
            (i for i in range(len(rows) - 1, 0, -1) if rows[i] and rows[i][0] == user_id),
            None,
        )
        if last_index is None:
            return None

        removed = LedgerRow.from_values(rows[last_index])
        self.state.decrement(user_id, removed.choice)
        await self.ledger.delete_row(last_index)
        logger.info("choice revoked user=%s choice=%s row=%s", user_id, removed.choice, last_index)
        return removed

    def set_settled(self, user_id: str, flag: bool, month: str | None = None) -> None:
        self.state.set_settled(user_id, month or month_key(self.now()), flag)

    async def monthly_summary(self, user_id: str) -> MonthlySummary:
        rows = await self.ledger.read_all()
        return monthly_summary_for(rows, user_id, self.now())

    async def render_controls(self, user_id: str) -> tuple[str, list[dict[str, Any]]]:
        now = self.now()
        label = month_label(now)
        summary = await self.monthly_summary(user_id)
        settled = self.state.is_settled(user_id, month_key(now))
        return control_text(label), build_control_blocks(summary, label, settled, self.settings.pay_url)

    async def open_dm(self, user_id: str) -> str:
        ref = self.state.message_ref(user_id)
        if ref is not None:
            return ref.channel_id
        resp = await self.client.conversations_open(users=user_id)
        return resp["channel"]["id"]

    async def send_or_update_control_message(self, user_id: str) -> str:
        """Post or update the user's single control message for this month.

        Returns ``"updated"`` when the current month's message was edited in
        place and ``"posted"`` when a new message was created.
        """
        current_key = month_key(self.now())
        text, blocks = await self.render_controls(user_id)
        channel_id = await self.open_dm(user_id)
        ref = self.state.message_ref(user_id)

        if ref is not None and ref.ts and ref.month_key == current_key:
            await self.client.chat_update(channel=channel_id, ts=ref.ts, text=text, blocks=blocks)
            return "updated"

        resp = await self.client.chat_postMessage(channel=channel_id, text=text, blocks=blocks)
        self.state.remember_message(user_id, MessageRef(channel_id=channel_id, ts=resp["ts"], month_key=current_key))
        logger.info("control message posted user=%s channel=%s month=%s", user_id, channel_id, current_key)
        return "posted"

    async def dispatch(self, user_id: str, event: InteractionEvent) -> str | None:
        if isinstance(event, PayAcknowledged):
            return None

        async with self.state.lock_for(user_id):
            if isinstance(event, ChoiceMade):
                await self.record_choice(user_id, event.kind)
            elif isinstance(event, UndoRequested):
                await self.undo_last_choice(user_id)
            elif isinstance(event, SettlementToggled):
                self.set_settled(user_id, event.settled)
            else:
                self.state.counters_for(user_id)
            return await self.send_or_update_control_message(user_id)

    async def send_monthly_bills(self) -> BroadcastResult:
        rows = await self.ledger.read_all()
        result = BroadcastResult()
        for summary in global_monthly_summary(rows, self.now()):
            try:
                await self.client.chat_postMessage(
                    channel=summary.user_id,
                    text=bill_text(summary),
                    blocks=build_bill_blocks(summary, self.settings.pay_url),
                )
                result.delivered.append(summary.user_id)
            except Exception:
                logger.exception("monthly bill failed user=%s", summary.user_id)
                result.failed.append(summary.user_id)
        return result

    async def clear_dm(self, user_id: str) -> int:
        """Delete every message the bot has posted in its DM with ``user_id``."""
        channel_id = await self.open_dm(user_id)
        bot_user_id = self.state.bot_user_id
        deleted: set[str] = set()
        cursor: str | None = None
        while True:
            history = await self.client.conversations_history(channel=channel_id, cursor=cursor, limit=200)
            for message in history.get("messages") or []:
                if not (bot_user_id and message.get("user") == bot_user_id):
                    continue
                try:
                    await self.client.chat_delete(channel=channel_id, ts=message["ts"])
                    deleted.add(message["ts"])
                except SlackApiError as exc:
                    logger.debug("skipping undeletable message ts=%s error=%s", message.get("ts"), exc)
            cursor = (history.get("response_metadata") or {}).get("next_cursor") or None
            if not cursor:
                break

        ref = self.state.message_ref(user_id)
        if ref is not None and ref.ts in deleted:
            self.state.message_refs.pop(user_id, None)
        return len(deleted)
