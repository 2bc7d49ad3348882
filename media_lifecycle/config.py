"""Application configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    postgres_host: str = "postgres"
    postgres_port: int = 5432
    postgres_user: str = "media_lifecycle"
    postgres_password: str = "changeme"
    postgres_db: str = "media_lifecycle_db"

    # Redis
    redis_url: str = "redis://redis:6379/0"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = True

    # Celery
    celery_broker_url: str = "redis://redis:6379/0"
    celery_result_backend: str = "redis://redis:6379/0"

    # Lifecycle
    temp_retention_days: int = 7
    archive_retention_days: int = 7
    temp_sweep_batch_size: int = 500
    archive_sweep_batch_size: int = 100
    reclamation_cron_hour: int = 2
    reclamation_cron_minute: int = 0
    reclamation_startup_delay_seconds: int = 30
    reclamation_lock_timeout_seconds: int = 3600
    reconcile_grace_hours: int = 24

    # Uploads
    max_upload_bytes: int = 10 * 1024 * 1024

    # Object store
    storage_provider: str = "local"
    storage_base_path: str = "/data/media"
    storage_key_prefix: str = "assets"
    storage_timeout_seconds: float = 30.0
    media_base_url: str = ""
    s3_bucket_name: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: str = ""
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def database_url(self) -> str:
        """Build database URL."""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
