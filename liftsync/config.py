from typing import List, cast
from pydantic import AnyHttpUrl, PostgresDsn, computed_field
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Application
    PROJECT_NAME: str = "LiftSync"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Security
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30

    # Validation
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    # Server database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "liftsync"
    DATABASE_URL_OVERRIDE: str | None = None

    # Device store
    LOCAL_DATABASE_PATH: str = "liftsync-local.db"

    # Sync client
    SYNC_API_URL: str = "http://localhost:8000/api/v1"
    SYNC_TIMEOUT_SECONDS: int = 15
    SYNC_AUTO_ENABLED: bool = False
    SYNC_INTERVAL_SECONDS: int = 300

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return str(cast(PostgresDsn, MultiHostUrl.build(
            scheme="postgresql+asyncpg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )))

    @computed_field
    @property
    def LOCAL_DATABASE_URI(self) -> str:
        return f"sqlite+aiosqlite:///{self.LOCAL_DATABASE_PATH}"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

settings = Settings()  # type: ignore
