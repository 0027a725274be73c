"""Environment-driven settings for the forum API."""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=os.path.join(os.path.dirname(__file__), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: Optional[str] = Field(default=None, alias="LOG_LEVEL")

    database_path: str = Field(default="db.sqlite3", alias="DATABASE_PATH")

    jwt_secret: str = Field(default="change-me", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    # Empty string disables the audience check
    jwt_audience: str = Field(default="authenticated", alias="JWT_AUDIENCE")

    identity_url: str = Field(default="http://localhost:54321", alias="IDENTITY_URL")
    identity_api_key: str = Field(default="", alias="IDENTITY_API_KEY")
    storage_url: Optional[str] = Field(default=None, alias="STORAGE_URL")
    http_timeout: float = Field(default=10.0, alias="HTTP_TIMEOUT")

    post_media_bucket: str = Field(default="post-media", alias="POST_MEDIA_BUCKET")
    forum_media_bucket: str = Field(default="forum-media", alias="FORUM_MEDIA_BUCKET")
    user_media_bucket: str = Field(default="user-media", alias="USER_MEDIA_BUCKET")

    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    default_page_size: int = Field(default=10, alias="DEFAULT_PAGE_SIZE")
    max_page_size: int = Field(default=100, alias="MAX_PAGE_SIZE")

    @property
    def allowed_cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def storage_base_url(self) -> str:
        return (self.storage_url or self.identity_url).rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
