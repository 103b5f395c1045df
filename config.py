import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        access_token_secret: str,
        refresh_token_secret: str,
        access_token_ttl_minutes: int,
        refresh_token_ttl_minutes: int,
        log_level: str,
        page_limit_default: int,
        page_limit_max: int,
    ) -> None:
        self.database_url = database_url
        self.access_token_secret = access_token_secret
        self.refresh_token_secret = refresh_token_secret
        self.access_token_ttl_minutes = access_token_ttl_minutes
        self.refresh_token_ttl_minutes = refresh_token_ttl_minutes
        self.log_level = log_level
        self.page_limit_default = page_limit_default
        self.page_limit_max = page_limit_max


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expenses.db"
    database_url = os.getenv("EXPENSES_DATABASE_URL", f"sqlite:///{default_db}")
    access_token_secret = os.getenv(
        "EXPENSES_ACCESS_TOKEN_SECRET",
        "6f1c0d0f2b7e4d6a9a3e54c1f5d2b8e07c4a9d1e3f6b2a5c8d0e7f1a4b3c6d9e",
    )
    refresh_token_secret = os.getenv(
        "EXPENSES_REFRESH_TOKEN_SECRET",
        "b2e8d4a1c7f03e5b9d6a2c8f1e4b7d0a3c6f9e2b5d8a1c4f7e0b3d6a9c2f5e8b",
    )
    access_ttl = int(os.getenv("EXPENSES_ACCESS_TOKEN_TTL_MINUTES", "15"))
    refresh_ttl = int(os.getenv("EXPENSES_REFRESH_TOKEN_TTL_MINUTES", "10080"))
    log_level = os.getenv("EXPENSES_LOG_LEVEL", "INFO").upper()
    page_limit_default = int(os.getenv("EXPENSES_PAGE_LIMIT_DEFAULT", "10"))
    page_limit_max = int(os.getenv("EXPENSES_PAGE_LIMIT_MAX", "100"))
    return Settings(
        database_url=database_url,
        access_token_secret=access_token_secret,
        refresh_token_secret=refresh_token_secret,
        access_token_ttl_minutes=access_ttl,
        refresh_token_ttl_minutes=refresh_ttl,
        log_level=log_level,
        page_limit_default=page_limit_default,
        page_limit_max=page_limit_max,
    )
