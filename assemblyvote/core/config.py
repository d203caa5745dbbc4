"""Configuration management for the assembly voting service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


def _load_default_private_key() -> str:
    default_path = Path(__file__).resolve().parent / "../.." / "configs" / "dev-jwt.pem"
    if default_path.exists():
        return default_path.read_text(encoding="utf-8")
    raise FileNotFoundError("Default JWT private key not found. Provide JWT_PRIVATE_KEY environment variable.")


class Settings(BaseSettings):
    app_name: str = Field(default="Assembly Vote")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")
    app_url: str = Field(default="http://localhost:3000")

    database_url: str = Field(default="postgresql+psycopg://assembly:assembly@db:5432/assembly")

    aws_region: str = Field(default="us-east-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_log_bucket: str = Field(default="assembly-audit-logs")
    audit_log_prefix: str = Field(default="audit/records")
    audit_log_sample_rate: float = Field(default=1.0)
    proxy_document_bucket: str = Field(default="assembly-proxy-documents")
    proxy_document_prefix: str = Field(default="proxies")

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=True)
    otel_exporter_endpoint: str | None = Field(default=None)

    kafka_bootstrap_servers: str = Field(default="kafka:9092")
    assembly_events_topic: str = Field(default="assembly-events")
    tally_consumer_group: str = Field(default="assembly-tally-feed")
    enable_event_feed: bool = Field(default=False)

    otp_ttl_minutes: int = Field(default=30)
    otp_max_attempts: int = Field(default=5)
    signature_expiry_interval_seconds: int = Field(default=60)
    synthetic_login_domain: str = Field(default="assemblyvote.local")
    bcrypt_rounds: int = Field(default=12)
    quorum_threshold: float = Field(default=0.5)
    quorum_cache_ttl_seconds: float = Field(default=2.0)

    smtp_host: str = Field(default="smtp.gmail.com")
    smtp_port: int = Field(default=465)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_sender_name: str = Field(default="Assembly Vote")
    smtp_timeout_seconds: float = Field(default=10.0)

    sms_api_url: str = Field(default="https://api.labsmobile.com/json/send")
    sms_username: str | None = Field(default=None)
    sms_token: str | None = Field(default=None)
    sms_sender_id: str = Field(default="Aviso")
    sms_default_country_code: str = Field(default="57")
    sms_timeout_seconds: float = Field(default=5.0)

    jwt_algorithm: str = Field(default="RS256")
    jwt_private_key: str = Field(default_factory=_load_default_private_key)
    access_token_expire_minutes: int = Field(default=15)
    refresh_token_expire_days: int = Field(default=7)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
