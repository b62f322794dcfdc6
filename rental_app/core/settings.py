import os
from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from .url_parser import parser

load_dotenv()


class Settings(BaseSettings):
    PROJECT_NAME: str = "RENTAL MARKETPLACE BOOKING AND CHAT"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./rental.db")
    DATABASE_ECHO: bool = False
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_SECRET_KEY: str | None = os.getenv("PAYSTACK_SECRET_KEY")
    PAYSTACK_TIMEOUT_SECONDS: float = 15.0
    CLIENT_URL: str = os.getenv("CLIENT_URL", "http://localhost:3000")
    JWT_SECRET_KEY: str | None = os.getenv("JWT_SECRET_KEY")
    ALGORITHM: str = os.getenv("ALGORITHM", "HS256")
    REDIS_URL: str | None = os.getenv("REDIS_URL")
    CELERY_REDIS_URL: str = os.getenv("CELERY_REDIS_URL", "redis://localhost:6379/0")
    RABBITMQ_URL: str = os.getenv("RABBITMQ_URL", "")
    RABBITMQ_MAIN_EXCHANGE: str = "rental_events"
    CHAT_EVENTS_CHANNEL: str = "chat_events"
    MESSAGE_EDIT_WINDOW_HOURS: int = 24
    MESSAGE_MAX_LENGTH: int = 5000
    BOOKING_HOLD_TTL_SECONDS: int = 120
    BOOKING_LOCK_TTL_SECONDS: int = 10
    BOOKING_LOCK_WAIT_SECONDS: float = 5.0
    EXPIRY_SWEEP_HOUR: int = 0
    EXPIRY_SWEEP_MINUTE: int = 0
    ALLOWED_HOSTS_RAW: str = os.getenv("ALLOWED_HOSTS", "http://localhost:3000")

    @property
    def ALLOWED_HOSTS(self) -> List[str]:
        return parser.parse_url_list(self.ALLOWED_HOSTS_RAW, "ALLOWED_HOSTS")

    @property
    def PAYMENT_CALLBACK_URL(self) -> str:
        return f"{self.CLIENT_URL.rstrip('/')}/payment/callback"

    class Config:
        env_file = ".env"
        extra = "ignore"
        case_sensitive = False


settings = Settings()
