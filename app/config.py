from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql://postgres:postgres@db:5432/verdicts"
    redis_url: str = "redis://redis:6379/0"
    log_level: str = "INFO"

    # Vote weights (intent strength, not raw popularity)
    search_vote_weight: int = 1
    scan_vote_weight: int = 5
    member_scan_vote_weight: int = 20

    # Weighted votes needed before a barcode is sent to the lab
    default_funding_threshold: int = 1000

    # Velocity scoring
    velocity_recent_weight: int = 5  # 24h scans count 5x in the velocity score
    trending_scans_24h: int = 20
    trending_scans_7d: int = 100
    urgent_scans_24h: int = 100
    urgent_scans_7d: int = 500
    max_scan_timestamps: int = 500  # Rolling window cap per barcode

    # Cascade page size (products re-evaluated per run)
    cascade_page_size: int = 500

    # Results-ready notification webhook (empty = disabled)
    notify_webhook_url: str = ""
    notify_timeout: int = 15
    notify_connect_timeout: int = 5

    class Config:
        env_file = ".env"


settings = Settings()
