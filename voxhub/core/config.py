from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: Literal["dev", "staging", "prod"] = "dev"
    app_name: str = "Voxhub Uploads"
    api_prefix: str = "/api/v1"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    cors_allow_origin: str = "*"
    redis_url: str = "redis://localhost:6379/0"

    supabase_jwt_secret: str = Field(default="change-me-supabase-secret", min_length=16)
    supabase_jwt_audience: str = "authenticated"

    storage_provider: Literal["local", "s3", "r2"] = "local"
    storage_local_dir: str = "./storage"
    storage_local_base_url: str = "http://localhost:8000"
    storage_sign_ttl_seconds: int = 3600
    storage_signing_key: str = Field(default="change-me-storage-signing", min_length=16)
    storage_orphan_sweep_enabled: bool = False
    storage_orphan_ttl_hours: int = 24
    storage_orphan_sweep_interval_minutes: int = 30

    s3_endpoint: str = ""
    s3_region: str = "auto"
    s3_bucket: str = "voxhub"
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_public_base_url: str = ""

    upload_rate_limit: int = 60
    upload_rate_window_seconds: int = 60

    @property
    def public_base_url(self) -> str:
        if self.storage_provider == "local":
            return f"{self.storage_local_base_url.rstrip('/')}{self.api_prefix}/storage/public"
        return self.s3_public_base_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
