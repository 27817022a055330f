import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        delivery_hour: int,
        default_alert_days: int,
        default_currency: str,
        max_subscriptions: Optional[int],
        sweep_interval_minutes: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.delivery_hour = delivery_hour
        self.default_alert_days = default_alert_days
        self.default_currency = default_currency
        self.max_subscriptions = max_subscriptions
        self.sweep_interval_minutes = sweep_interval_minutes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("SUBTRACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return int(raw)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("SUBTRACK_DATABASE_URL")
    if not database_url:
        data_dir = _ensure_data_dir()
        database_url = f"sqlite:///{data_dir / 'subscriptions.db'}"
    timezone = os.getenv("SUBTRACK_TIMEZONE", "UTC")
    delivery_hour = int(os.getenv("SUBTRACK_DELIVERY_HOUR", "10"))
    if not 0 <= delivery_hour <= 23:
        raise ValueError("SUBTRACK_DELIVERY_HOUR must be between 0 and 23")
    default_alert_days = int(os.getenv("SUBTRACK_DEFAULT_ALERT_DAYS", "3"))
    default_currency = os.getenv("SUBTRACK_DEFAULT_CURRENCY", "BDT")
    max_subscriptions = _optional_int("SUBTRACK_MAX_SUBSCRIPTIONS")
    sweep_interval_minutes = int(os.getenv("SUBTRACK_SWEEP_INTERVAL_MINUTES", "60"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        delivery_hour=delivery_hour,
        default_alert_days=default_alert_days,
        default_currency=default_currency,
        max_subscriptions=max_subscriptions,
        sweep_interval_minutes=sweep_interval_minutes,
    )
