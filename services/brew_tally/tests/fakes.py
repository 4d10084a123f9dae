"""In-memory stand-ins for the Sheets ledger and the Slack web client."""

from __future__ import annotations

from typing import Any

from slack_sdk.errors import SlackApiError

from brew_tally.schemas import LEDGER_HEADER, LedgerRow


class FakeLedger:
    def __init__(self, rows: list[list[str]] | None = None, fail_append: bool = False) -> None:
        self.rows: list[list[str]] = [list(r) for r in rows] if rows else []
        self.fail_append = fail_append
        self.deleted: list[int] = []

    async def ensure_header_row(self) -> bool:
        if self.rows and any(cell.strip() for cell in self.rows[0]):
            return False
        if self.rows:
            self.rows[0] = list(LEDGER_HEADER)
        else:
            self.rows.append(list(LEDGER_HEADER))
        return True

    async def append(self, row: LedgerRow) -> None:
        if self.fail_append:
            raise RuntimeError("sheets unavailable")
        await self.ensure_header_row()
        self.rows.append([str(value) for value in row.to_values()])

    async def read_all(self) -> list[list[str]]:
        return [list(r) for r in self.rows]

    async def delete_row(self, index: int) -> None:
        self.deleted.append(index)
        del self.rows[index]

    def rows_for(self, user_id: str) -> list[list[str]]:
        return [r for r in self.rows[1:] if r and r[0] == user_id]


class FakeSlackClient:
    def __init__(
        self,
        members: list[dict[str, Any]] | None = None,
        fail_post_channels: set[str] | None = None,
        history_pages: list[list[dict[str, Any]]] | None = None,
        bot_user_id: str = "UBOT",
    ) -> None:
        self.members = members or []
        self.fail_post_channels = fail_post_channels or set()
        self.history_pages = history_pages or [[]]
        self.bot_user_id = bot_user_id
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._ts = 0

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == method]

    async def auth_test(self) -> dict[str, Any]:
        self.calls.append(("auth_test", {}))
        return {"ok": True, "user_id": self.bot_user_id}

    async def users_info(self, user: str) -> dict[str, Any]:
        self.calls.append(("users_info", {"user": user}))
        return {"ok": True, "user": {"id": user, "name": user.lower(), "profile": {"display_name": f"name-{user}"}}}

    async def users_list(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("users_list", kwargs))
        return {"ok": True, "members": self.members, "response_metadata": {"next_cursor": ""}}

    async def conversations_open(self, users: str) -> dict[str, Any]:
        self.calls.append(("conversations_open", {"users": users}))
        return {"ok": True, "channel": {"id": f"D-{users}"}}

    async def chat_postMessage(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("chat_postMessage", kwargs))
        if kwargs["channel"] in self.fail_post_channels:
            raise SlackApiError("post failed", {"ok": False, "error": "channel_not_found"})
        self._ts += 1
        return {"ok": True, "ts": f"1700000000.{self._ts:06d}", "channel": kwargs["channel"]}

    async def chat_update(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("chat_update", kwargs))
        return {"ok": True, "ts": kwargs["ts"]}

    async def chat_delete(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("chat_delete", kwargs))
        if kwargs["ts"].startswith("locked"):
            raise SlackApiError("cannot delete", {"ok": False, "error": "cant_delete_message"})
        return {"ok": True}

    async def conversations_history(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("conversations_history", kwargs))
        page = len(self.calls_to("conversations_history")) - 1
        next_cursor = f"page-{page + 1}" if page + 1 < len(self.history_pages) else ""
        return {"ok": True, "messages": self.history_pages[page], "response_metadata": {"next_cursor": next_cursor}}
