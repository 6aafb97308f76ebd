import json
import os
import secrets

from typing import Optional

from pydantic import AnyHttpUrl, PostgresDsn, field_validator
from pydantic.fields import computed_field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    SECRET_KEY: str = secrets.token_urlsafe(32)
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8
    SERVER_NAME: Optional[str] = None
    SERVER_HOST: Optional[AnyHttpUrl] = None
    SERVER_ADDRESS: Optional[str] = "127.0.0.1"
    SERVER_PORT: int = int(os.getenv("PORT", 8000))
    BACKEND_CORS_ORIGINS: list[str] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        if isinstance(v, str):
            if v.startswith("["):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    raise ValueError(v) from None
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    FRONTEND_URL: Optional[str] = None
    DATABASE_URL: Optional[str] = None
    POSTGRES_SERVER: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: Optional[str] = None
    POSTGRES_DB: Optional[str] = None
    POSTGRES_POOL_SIZE: int = 50
    POSTGRES_MAX_OVERFLOW: int = 0
    SQLITE_PATH: str = "./polls.db"

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        # DATABASE_URL wins (Railway, Render, etc.)
        if self.DATABASE_URL:
            db_url = self.DATABASE_URL
            if db_url.startswith("postgresql://") and "+psycopg" not in db_url:
                db_url = db_url.replace("postgresql://", "postgresql+psycopg://")
            return db_url

        if not all([self.POSTGRES_USER, self.POSTGRES_PASSWORD, self.POSTGRES_SERVER, self.POSTGRES_DB]):
            return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"

        return str(
            PostgresDsn.build(
                scheme="postgresql+psycopg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_SERVER,
                path=f"{self.POSTGRES_DB or ''}",
            )
        )

    # Redirect targets handed back to clients by the access guard
    LOGIN_PATH: str = "/auth/login"
    POLL_LIST_PATH: str = "/polls"

    # Create form exposes a fixed number of option inputs; edit is unbounded
    CREATE_OPTION_SLOTS: int = 4
    MIN_POLL_OPTIONS: int = 2

    CREATE_TABLES_ON_STARTUP: bool = False
    WATCH_FILES: bool = False
    LOG_LEVEL: str = "info"  # critical, error, warning, info, debug

    class Config:
        env_file = "local.env"
        case_sensitive = True
        extra = "allow"
        env_ignore_empty = True


settings = Settings()
