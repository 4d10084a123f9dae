from __future__ import annotations

from datetime import datetime
from typing import Sequence

from .schemas import ChoiceKind, MonthlySummary, parse_price

Rows = Sequence[Sequence[str]]


def month_key(date: datetime | None = None) -> str:
    date = date or datetime.now()
    return f"{date.year}-{date.month:02d}"


def month_label(date: datetime | None = None) -> str:
    date = date or datetime.now()
    return date.strftime("%B %Y")


def parse_row_date(value: str | None) -> datetime | None:
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _cell(row: Sequence[str], index: int) -> str:
    return str(row[index]) if len(row) > index else ""


def _add_row(summary: MonthlySummary, row: Sequence[str]) -> None:
    choice = _cell(row, 3)
    if choice == ChoiceKind.COFFEE.value:
        summary.coffee += 1
    elif choice == ChoiceKind.TEA.value:
        summary.tea += 1
    summary.amount += parse_price(_cell(row, 4))


def _in_month(row: Sequence[str], reference: datetime) -> bool:
    parsed = parse_row_date(_cell(row, 2))
    return parsed is not None and parsed.year == reference.year and parsed.month == reference.month


def monthly_summary_for(rows: Rows, user_id: str, reference: datetime | None = None) -> MonthlySummary:
    """Tally one user's rows for the calendar month of ``reference``.

    ``rows`` is the raw ledger including its header at position 0. Rows from
    other users, other months, or with an unparseable date are skipped.
    """
    reference = reference or datetime.now()
    summary = MonthlySummary(user_id=user_id, month=month_key(reference))
    for row in rows[1:]:
        if not row or _cell(row, 0) != user_id:
            continue
        if _in_month(row, reference):
            _add_row(summary, row)
    return summary


def global_monthly_summary(rows: Rows, reference: datetime | None = None) -> list[MonthlySummary]:
    reference = reference or datetime.now()
    key = month_key(reference)
    by_user: dict[str, MonthlySummary] = {}
    for row in rows[1:]:
        user_id = _cell(row, 0) if row else ""
        if not user_id or not _in_month(row, reference):
            continue
        if user_id not in by_user:
            by_user[user_id] = MonthlySummary(user_id=user_id, month=key)
        _add_row(by_user[user_id], row)
    return list(by_user.values())


def format_amount(amount: float) -> str:
    return f"${amount:.2f}"
