from functools import lru_cache
import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    timezone: str = Field(default="UTC", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(default="", alias="DATABASE_URL")
    postgres_db: str = Field(default="classbook", alias="POSTGRES_DB")
    postgres_user: str = Field(default="classbook", alias="POSTGRES_USER")
    postgres_password: str = Field(default="classbook", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")
    jwt_expire_min: int = Field(default=43200, alias="JWT_EXPIRE_MIN")

    notification_webhook_url: str = Field(default="", alias="NOTIFICATION_WEBHOOK_URL")
    notification_webhook_token: str = Field(default="", alias="NOTIFICATION_WEBHOOK_TOKEN")

    scheduler_enabled: bool = Field(default=False, alias="SCHEDULER_ENABLED")
    job_batch_size: int = Field(default=10, alias="JOB_BATCH_SIZE")
    materialize_horizon_days: int = Field(default=28, alias="MATERIALIZE_HORIZON_DAYS")
    availability_max_days: int = Field(default=62, alias="AVAILABILITY_MAX_DAYS")
    block_recurrence_horizon_days: int = Field(
        default=365, alias="BLOCK_RECURRENCE_HORIZON_DAYS"
    )
    private_sessions_override_blocks: bool = Field(
        default=False, alias="PRIVATE_SESSIONS_OVERRIDE_BLOCKS"
    )

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(**os.environ)
