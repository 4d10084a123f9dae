from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from slack_bolt.async_app import AsyncApp
from slack_sdk.errors import SlackApiError

from .blocks import selected_settled
from .schemas import (
    ChoiceKind,
    ChoiceMade,
    ControlsRequested,
    InteractionEvent,
    PayAcknowledged,
    SettlementToggled,
    UndoRequested,
)
from .service import TallyService

logger = logging.getLogger(__name__)

Ack = Callable[..., Awaitable[Any]]
Respond = Callable[..., Awaitable[Any]]

DM_HINT = "Check your DM for Coffee/Tea controls."
CLEAR_DM_SCOPES_HINT = (
    "Could not clear DM messages. Ensure scopes: im:history, im:write, chat:write "
    "and the app is reinstalled. Error: {detail}"
)


def event_for_action(action: dict[str, Any]) -> InteractionEvent:
    action_id = action.get("action_id")
    if action_id in {"coffee_choice", "tea_choice"}:
        return ChoiceMade(kind=ChoiceKind(action.get("value")))
    if action_id == "revoke_choice":
        return UndoRequested()
    if action_id == "settled_toggle":
        return SettlementToggled(settled=selected_settled(action))
    if action_id == "pay_now":
        return PayAcknowledged()
    raise ValueError(f"unsupported action: {action_id}")


def _error_detail(exc: Exception) -> str:
    if isinstance(exc, SlackApiError):
        return str(exc.response.get("error") or exc)
    return str(exc) or "unknown_error"


class InteractionHandlers:
    def __init__(self, service: TallyService) -> None:
        self.service = service

    async def coffee_tea_command(self, ack: Ack, command: dict[str, Any], respond: Respond) -> None:
        await ack(response_type="ephemeral", text=DM_HINT)
        user_id = command["user_id"]
        try:
            await self.service.dispatch(user_id, ControlsRequested())
        except Exception:
            logger.exception("failed to send or update DM control message user=%s", user_id)
            # Fall back to ephemeral controls in the channel, e.g. missing im:write
            try:
                _, blocks = await self.service.render_controls(user_id)
                await respond(
                    response_type="ephemeral",
                    text="Could not DM you, showing controls here instead.",
                    blocks=blocks,
                )
            except Exception:
                logger.exception("ephemeral fallback failed user=%s", user_id)

    async def monthly_tally_command(self, ack: Ack, respond: Respond) -> None:
        await ack()
        try:
            result = await self.service.send_monthly_bills()
        except Exception as exc:
            logger.exception("monthly tally failed")
            await respond(response_type="ephemeral", text=f"Monthly tally failed: {_error_detail(exc)}")
            return
        if result.failed:
            await respond(
                response_type="ephemeral",
                text=f"Sent {len(result.delivered)} bill(s); {len(result.failed)} could not be delivered.",
            )

    async def clear_dm_command(self, ack: Ack, command: dict[str, Any], respond: Respond) -> None:
        await ack()
        try:
            deleted = await self.service.clear_dm(command["user_id"])
        except Exception as exc:
            logger.warning("clear dm failed user=%s error=%s", command.get("user_id"), exc)
            await respond(response_type="ephemeral", text=CLEAR_DM_SCOPES_HINT.format(detail=_error_detail(exc)))
            return
        await respond(response_type="ephemeral", text=f"Deleted {deleted} prior bot message(s) in our DM.")

    async def block_action(self, ack: Ack, body: dict[str, Any], action: dict[str, Any], respond: Respond) -> None:
        await ack()
        user_id = body["user"]["id"]
        try:
            await self.service.dispatch(user_id, event_for_action(action))
        except Exception as exc:
            logger.exception("action failed user=%s action_id=%s", user_id, action.get("action_id"))
            try:
                await respond(
                    response_type="ephemeral",
                    replace_original=False,
                    text=f"Sorry, that did not go through: {_error_detail(exc)}",
                )
            except Exception:
                logger.exception("error notice failed user=%s", user_id)

    def register(self, app: AsyncApp) -> AsyncApp:
        app.command("/coffee_tea")(self.coffee_tea_command)
        app.command("/monthly_tally")(self.monthly_tally_command)
        app.command("/coffee_clear_dm")(self.clear_dm_command)
        for action_id in ("coffee_choice", "tea_choice", "revoke_choice", "settled_toggle", "pay_now"):
            app.action(action_id)(self.block_action)
        return app
