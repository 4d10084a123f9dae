from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable

from dotenv import load_dotenv

load_dotenv()

NUMERIC_ENV: dict[str, tuple[Callable[[str], float], float]] = {
    "PRICE_COFFEE": (float, 2.0),
    "PRICE_TEA": (float, 1.5),
    "PORT": (int, 3000),
    "BROADCAST_HOUR": (int, 9),
}


def _env_number(name: str) -> float:
    cast, default = NUMERIC_ENV[name]
    try:
        return cast(os.getenv(name, str(default)))
    except ValueError:
        return cast(default)


def invalid_numeric_env() -> list[str]:
    bad: list[str] = []
    for name, (cast, _) in NUMERIC_ENV.items():
        raw = os.getenv(name)
        if raw is None:
            continue
        try:
            cast(raw)
        except ValueError:
            bad.append(name)
    return bad


@dataclass(frozen=True)
class Settings:
    slack_bot_token: str = os.getenv("SLACK_BOT_TOKEN", "")
    slack_signing_secret: str = os.getenv("SLACK_SIGNING_SECRET", "")
    google_credentials_file: str = os.getenv("GOOGLE_APPLICATION_CREDENTIALS", "")
    spreadsheet_id: str = os.getenv("SPREADSHEET_ID", "")
    sheet_title: str = os.getenv("SHEET_TITLE", "Sheet1")
    price_coffee: float = _env_number("PRICE_COFFEE")
    price_tea: float = _env_number("PRICE_TEA")
    pay_url: str = os.getenv("PAY_URL", "https://paypal.me/youraccount")
    port: int = int(_env_number("PORT"))
    broadcast_hour: int = int(_env_number("BROADCAST_HOUR"))
    broadcast_timezone: str = os.getenv("BROADCAST_TIMEZONE", "")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def slack_configured(self) -> bool:
        return bool(self.slack_bot_token and self.slack_signing_secret)

    def price_for(self, kind: str) -> float:
        return self.price_coffee if kind == "coffee" else self.price_tea

    def validate(self) -> list[str]:
        """Return startup warnings for settings that later operations depend on."""
        issues: list[str] = []
        if not self.slack_configured:
            issues.append("Missing SLACK_BOT_TOKEN or SLACK_SIGNING_SECRET in environment.")
        if not self.spreadsheet_id:
            issues.append("Missing SPREADSHEET_ID in environment. Google Sheets logging will fail.")
        for name in invalid_numeric_env():
            issues.append(f"{name}={os.getenv(name)!r} is not a number; using default {NUMERIC_ENV[name][1]}.")
        return issues


settings = Settings()
