from enum import Enum

from pydantic_settings import BaseSettings


class CacheBackend(str, Enum):
    JSON = "json"
    DATABASE = "database"
    MEMORY = "memory"


class NotifierChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    LOG = "log"


class TieBreakPolicy(str, Enum):
    FIRST = "first"
    RANDOM = "random"


class Settings(BaseSettings):
    targets_path: str = "data/targets.json"
    cache_path: str = "data/notified.json"
    cache_backend: CacheBackend = CacheBackend.JSON
    database_url: str = "sqlite+aiosqlite:///./slotwatch.db"

    timezone: str = "Asia/Tokyo"
    target_weekday: int = 6  # Python weekday numbering, Sunday == 6
    window_chars: int = 140
    sample_chars: int = 500

    navigation_timeout: float = 45.0
    selector_timeout: float = 25.0
    click_confirm_timeout: float = 20.0
    keyboard_confirm_timeout: float = 8.0
    click_retries: int = 3
    min_body_length: int = 200
    max_pages: int = 2
    tie_break_policy: TieBreakPolicy = TieBreakPolicy.FIRST

    pacing_min_seconds: float = 2.0
    pacing_max_seconds: float = 4.0
    step_pause_min_seconds: float = 0.2
    step_pause_max_seconds: float = 0.8

    notifier_channel: NotifierChannel = NotifierChannel.EMAIL

    mail_host: str = "smtp.gmail.com"
    mail_port: int = 465
    mail_user: str = ""
    mail_pass: str = ""
    mail_to: str = ""

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""
    user_phone_number: str = ""

    scheduler_api_key: str = ""

    chromedriver_path: str = ""
    headless: bool = True
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
