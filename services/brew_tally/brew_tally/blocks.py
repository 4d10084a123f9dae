from __future__ import annotations

from typing import Any

from .schemas import MonthlySummary
from .summary import format_amount

SETTLED_OPTION = {
    "text": {"type": "plain_text", "text": "Settled"},
    "value": "settled",
}


def control_text(label: str) -> str:
    return f"Your tally in {label}"


def _button(text: str, action_id: str, value: str | None = None, url: str | None = None) -> dict[str, Any]:
    button: dict[str, Any] = {
        "type": "button",
        "text": {"type": "plain_text", "text": text, "emoji": True},
        "action_id": action_id,
    }
    if value is not None:
        button["value"] = value
    if url is not None:
        button["url"] = url
    return button


def build_control_blocks(summary: MonthlySummary, label: str, settled: bool, pay_url: str) -> list[dict[str, Any]]:
    checkbox: dict[str, Any] = {
        "type": "checkboxes",
        "action_id": "settled_toggle",
        "options": [SETTLED_OPTION],
    }
    if settled:
        checkbox["initial_options"] = [SETTLED_OPTION]

    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"{control_text(label)}:\n☕ Coffee: {summary.coffee}\n🍵 Tea: {summary.tea}",
            },
        },
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": f"Amount due: {format_amount(summary.amount)}"},
            "accessory": checkbox,
        },
        {
            "type": "actions",
            "elements": [
                _button("Coffee ☕", "coffee_choice", value="coffee"),
                _button("Tea 🍵", "tea_choice", value="tea"),
                _button("Undo Last Choice", "revoke_choice", value="revoke"),
                _button("Pay Now", "pay_now", url=pay_url),
            ],
        },
    ]


def bill_text(summary: MonthlySummary) -> str:
    return f"Your monthly bill: ☕ {summary.coffee} coffees, 🍵 {summary.tea} teas = {format_amount(summary.amount)}"


def build_bill_blocks(summary: MonthlySummary, pay_url: str) -> list[dict[str, Any]]:
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"Your monthly bill:\n☕ {summary.coffee} coffees\n🍵 {summary.tea} teas\n"
                    f"Total: {format_amount(summary.amount)}"
                ),
            },
        },
        {
            "type": "actions",
            "elements": [_button("Pay Now", "pay_now", url=pay_url)],
        },
    ]


def selected_settled(action: dict[str, Any]) -> bool:
    """Read the checkbox state out of a ``settled_toggle`` action payload."""
    return any(option.get("value") == "settled" for option in action.get("selected_options") or [])
