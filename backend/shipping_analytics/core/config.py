from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Service
    SERVICE_NAME: str = "shipping-analytics"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: list[str] = []

    # Uploads
    UPLOAD_DIR: str = "./uploads"
    DATASET_BASENAME: str = "shipping-data"
    ALLOWED_EXTENSIONS: list[str] = [".csv", ".gz", ".zip"]
    MAX_UPLOAD_BYTES: int = 100 * 1024 * 1024

    # Query limits
    SEARCH_RESULT_LIMIT: int = 100
    REPORT_TOP_N: int = 20
    LEADERBOARD_SIZE: int = 10
    RECENT_SHIPMENTS_LIMIT: int = 10
    EXPORT_COMMODITY_LIMIT: int = 5
    AUTOCOMPLETE_MIN_CHARS: int = 2
    AUTOCOMPLETE_LIMIT: int = 10
    DEFAULT_PAGE_SIZE: int = 25
    MAX_PAGE_SIZE: int = 500

    class Config:
        env_file = ".env"

settings = Settings()
