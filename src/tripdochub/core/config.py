from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    base_url: str = "http://localhost:8000"
    secret_key: str = "change-me"

    database_url: str = "sqlite:///./tripdochub.db"
    redis_url: str = "redis://localhost:6379/0"

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")
    storage_url_ttl_seconds: int = 7 * 24 * 3600

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "tripdochub"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None
    s3_public_base_url: str | None = None

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    extraction_timeout_seconds: float = 60.0
    email_body_max_chars: int = 15000
    email_body_min_chars: int = 50

    mailgun_webhook_signing_key: str | None = None
    mailgun_signature_max_age_seconds: int = 15 * 60
    forwarding_email_domain: str = "in.mytripdochub.com"
    inbound_max_attachments: int = 10
    inbound_max_attachment_bytes: int = 25 * 1024 * 1024

    default_free_credits: int = 20

    expo_push_url: str = "https://exp.host/--/api/v2/push/send"
    push_timeout_seconds: float = 10.0

    access_token_exp_minutes: int = 60 * 24 * 30

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"prod", "production"}


settings = Settings()
