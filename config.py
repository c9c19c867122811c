import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        pay_period_days: int,
        close_hour: int,
        close_minute: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.pay_period_days = pay_period_days
        self.close_hour = close_hour
        self.close_minute = close_minute


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("BUDGET_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "budgets.db"
        database_url = f"sqlite:///{default_db}"
    timezone = os.getenv("BUDGET_TIMEZONE", "Europe/Berlin")
    pay_period_days = int(os.getenv("BUDGET_PAY_PERIOD_DAYS", "14"))
    if pay_period_days <= 0:
        raise ValueError("BUDGET_PAY_PERIOD_DAYS must be positive")
    close_hour = int(os.getenv("BUDGET_CLOSE_HOUR", "0"))
    close_minute = int(os.getenv("BUDGET_CLOSE_MINUTE", "15"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        pay_period_days=pay_period_days,
        close_hour=close_hour,
        close_minute=close_minute,
    )
