from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    base_currency: str = "CUP"
    db_path: str = "hearth.db"
    debug: bool = False
    exchange_rate_url: str = Field(
        default="https://open.er-api.com/v6/latest",
        validation_alias="rates_url",
    )
    exchange_rate_cache_hours: int = 24
    refresh_interval_seconds: float = 60.0
    load_delay_seconds: float = 1.5
    notifications_enabled: bool = True
    notification_days: int = 3
    notification_duration_seconds: float = 5.0
    house_image_url: str = "https://picsum.photos/seed/{house_id}/400/200"
    session_path: str = ".hearth-session"

    @field_validator("base_currency", mode="before")
    @classmethod
    def upper_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("notification_days")
    @classmethod
    def check_notification_days(cls, v: int) -> int:
        if not 1 <= v <= 30:
            raise ValueError("notification_days must be between 1 and 30")
        return v


settings = Settings()
