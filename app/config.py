"""Application configuration using Pydantic Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Fal
    FAL_API_KEY: str = ""
    FAL_QUEUE_URL: str = "https://queue.fal.run"
    FAL_STORAGE_URL: str = "https://rest.alpha.fal.ai/storage/upload/initiate"

    # Replicate
    REPLICATE_API_TOKEN: str = ""
    REPLICATE_BASE_URL: str = "https://api.replicate.com/v1"

    PROVIDER_HTTP_TIMEOUT: float = 60.0

    # Object storage (blob store with a PUT-by-pathname API)
    STORAGE_API_URL: str = "https://blob.vercel-storage.com"
    STORAGE_TOKEN: str = ""
    STORAGE_FOLDER: str = "outputs"
    MIGRATION_CONCURRENCY: int = 4

    # Notifications
    DISCORD_RUN_WEBHOOK_URL: str = ""

    # Polling
    POLL_INTERVAL_SECONDS: float = 1.0
    MAX_POLL_ATTEMPTS: int = 300  # ~5 minutes at 1s intervals
    PROGRESS_SNAPSHOT_EVERY: int = 5

    # Worker
    WORKER_POLL_INTERVAL: float = 1.0
    WORKER_CONCURRENCY: int = 4
    MAX_JOB_RETRIES: int = 2
    JOB_RETRY_BACKOFF_SECONDS: float = 5.0
    STALE_JOB_SECONDS: int = 600

    # Idempotency keys
    IDEMPOTENCY_TTL_SECONDS: int = 86400
    IDEMPOTENCY_MAX_ENTRIES: int = 10000

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
