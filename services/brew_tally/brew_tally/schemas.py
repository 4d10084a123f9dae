from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, Field

LEDGER_HEADER: list[str] = ["UserID", "UserName", "Date", "Choice", "Price"]


def parse_price(value: str | float | None) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


class ChoiceKind(str, Enum):
    COFFEE = "coffee"
    TEA = "tea"


class LedgerRow(BaseModel):
    user_id: str
    user_name: str
    date: str
    choice: str
    price: float

    def to_values(self) -> list[str | float]:
        return [self.user_id, self.user_name, self.date, self.choice, self.price]

    @classmethod
    def from_values(cls, values: list[str]) -> "LedgerRow":
        padded = list(values) + [""] * (len(LEDGER_HEADER) - len(values))
        return cls(
            user_id=str(padded[0]),
            user_name=str(padded[1]),
            date=str(padded[2]),
            choice=str(padded[3]),
            price=parse_price(padded[4]),
        )


class MonthlySummary(BaseModel):
    user_id: str
    month: str
    coffee: int = 0
    tea: int = 0
    amount: float = 0.0


class ChoiceCounters(BaseModel):
    coffee: int = 0
    tea: int = 0


class MessageRef(BaseModel):
    channel_id: str
    ts: str
    month_key: str


class ChoiceMade(BaseModel):
    type: Literal["choice_made"] = "choice_made"
    kind: ChoiceKind


class UndoRequested(BaseModel):
    type: Literal["undo_requested"] = "undo_requested"


class SettlementToggled(BaseModel):
    type: Literal["settlement_toggled"] = "settlement_toggled"
    settled: bool


class PayAcknowledged(BaseModel):
    type: Literal["pay_acknowledged"] = "pay_acknowledged"


class ControlsRequested(BaseModel):
    type: Literal["controls_requested"] = "controls_requested"


InteractionEvent = Union[ChoiceMade, UndoRequested, SettlementToggled, PayAcknowledged, ControlsRequested]


class BroadcastResult(BaseModel):
    delivered: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
