from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Venue Reservations API"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8

    # Shared secret required to register admin / MDRR staff / payment collector accounts
    ADMIN_SECRET_KEY: str = "change-this-admin-secret"

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "venue_reservations"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    # Reservation workflow
    BOOKER_CANCELLATION_CUTOFF_HOURS: int = 24
    COMPLETION_SWEEP_INTERVAL_SECONDS: int = 60
    # Reviewer notified when a payment approval is promoted; falls back to the
    # earliest active user of the route's approver role.
    DESIGNATED_REVIEWER_EMAIL: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
