from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable

import gspread
from gspread.utils import ValueInputOption

from .config import Settings
from .schemas import LEDGER_HEADER, LedgerRow

logger = logging.getLogger(__name__)

DATA_RANGE = "A:E"
HEADER_RANGE = "A1:E1"


class SheetNotFoundError(LookupError):
    """Raised when the configured sheet title does not exist in the spreadsheet."""


class GoogleSheetsLedger:
    """Append-only choice ledger kept in one worksheet, columns A:E.

    gspread is blocking, so every call runs in a worker thread. The worksheet
    handle is resolved once and reused for the life of the process.
    """

    def __init__(
        self,
        spreadsheet_id: str,
        sheet_title: str = "Sheet1",
        client_factory: Callable[[], gspread.Client] | None = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheet_title = sheet_title
        self._client_factory = client_factory or gspread.service_account
        self._worksheet: Any = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleSheetsLedger":
        factory = (
            partial(gspread.service_account, filename=settings.google_credentials_file)
            if settings.google_credentials_file
            else gspread.service_account
        )
        return cls(spreadsheet_id=settings.spreadsheet_id, sheet_title=settings.sheet_title, client_factory=factory)

    def _open_worksheet(self) -> Any:
        if self._worksheet is None:
            spreadsheet = self._client_factory().open_by_key(self.spreadsheet_id)
            try:
                self._worksheet = spreadsheet.worksheet(self.sheet_title)
            except gspread.exceptions.WorksheetNotFound as exc:
                raise SheetNotFoundError(f"Sheet with title {self.sheet_title} not found") from exc
        return self._worksheet

    def _ensure_header_row(self) -> bool:
        worksheet = self._open_worksheet()
        first_row = worksheet.row_values(1)
        if any(str(cell).strip() for cell in first_row):
            return False
        worksheet.update(values=[LEDGER_HEADER], range_name=HEADER_RANGE, value_input_option=ValueInputOption.raw)
        logger.info("ledger header written sheet=%s", self.sheet_title)
        return True

    def _append(self, row: LedgerRow) -> None:
        self._ensure_header_row()
        self._open_worksheet().append_row(
            row.to_values(),
            value_input_option=ValueInputOption.raw,
            table_range=DATA_RANGE,
        )

    def _read_all(self) -> list[list[str]]:
        return [[str(cell) for cell in row] for row in self._open_worksheet().get_values(DATA_RANGE)]

    def _delete_row(self, index: int) -> None:
        # gspread rows are 1-based
        self._open_worksheet().delete_rows(index + 1)
        logger.info("ledger row deleted sheet=%s index=%s", self.sheet_title, index)

    async def ensure_header_row(self) -> bool:
        return await asyncio.to_thread(self._ensure_header_row)

    async def append(self, row: LedgerRow) -> None:
        await asyncio.to_thread(self._append, row)

    async def read_all(self) -> list[list[str]]:
        """Every row of A:E in sheet order, header row included."""
        return await asyncio.to_thread(self._read_all)

    async def find_sheet_id(self) -> int:
        worksheet = await asyncio.to_thread(self._open_worksheet)
        return int(worksheet.id)

    async def delete_row(self, index: int) -> None:
        """Delete one row by zero-based position; later rows shift up."""
        await asyncio.to_thread(self._delete_row, index)
