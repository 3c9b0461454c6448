from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    database_url: str = "sqlite:///./safecheck.db"
    # Bearer token the external cron trigger must present; empty disables the check
    cron_secret: str = ""
    # Wall-clock zone schedule times are interpreted in
    reference_timezone: str = "UTC"

    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com/emails"
    alert_from_address: str = "SafeCheck <onboarding@resend.dev>"
    notify_timeout_seconds: float = 10.0
    # Email-to-SMS bridge, e.g. "txt.example.net"; SMS is skipped when unset
    sms_gateway_domain: Optional[str] = None

    log_level: str = "INFO"
    log_format: str = "text"  # json or text

    class Config:
        env_prefix = ""
        env_file = ".env"


settings = Settings()
