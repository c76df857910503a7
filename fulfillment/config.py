from typing import List, Optional
from urllib.parse import quote_plus

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    env: str = "production"
    log_level: str = "INFO"

    postgres_user: str = "postgres"
    postgres_password: str = ""
    postgres_db: str = "bookstore"
    postgres_host: str = "localhost"
    postgres_port: str = "5432"

    # full SQLAlchemy URL, overrides the postgres_* parts when set
    sqlalchemy_database_url: Optional[str] = None

    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # bot gateway
    telegram_bot_secret: Optional[str] = None
    telegram_bot_username: str = "astewai_bot"
    initiation_token_ttl_hours: int = 24

    # currency
    usd_to_birr_rate: Optional[float] = None
    display_currency: str = "ETB"

    # realtime fan-out toggles
    realtime_enable_purchase_updates: bool = True
    realtime_enable_admin_notifications: bool = True
    realtime_enable_progress_sync: bool = True
    realtime_enable_activity_feed: bool = True
    realtime_enrichment_workers: int = 4

    # read-through cache
    cache_ttl_item_seconds: int = 300
    cache_ttl_list_seconds: int = 60
    cache_ttl_count_seconds: int = 120
    cache_sweep_interval_seconds: int = 300

    # email (Brevo)
    brevo_api_key: str = ""
    mail_from: str = "no-reply@astewai.com"
    store_name: str = "Astewai Bookstore"
    admin_emails: List[str] = []
    base_url: str = "http://localhost:3000"

    # payment proof storage (R2)
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = "payment-proofs"

    @property
    def database_url(self):
        if self.sqlalchemy_database_url:
            return self.sqlalchemy_database_url
        encoded_password = quote_plus(self.postgres_password)
        return (
            f"postgresql+psycopg2://{self.postgres_user}:"
            f"{encoded_password}@{self.postgres_host}:"
            f"{self.postgres_port}/{self.postgres_db}"
        )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
