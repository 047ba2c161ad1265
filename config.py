import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        identity_secret: str,
        identity_max_age_secs: int,
        cursor_secret: str,
        page_size: int,
        advice_url: str,
        advice_api_key: str,
        advice_timeout_secs: float,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.identity_secret = identity_secret
        self.identity_max_age_secs = identity_max_age_secs
        self.cursor_secret = cursor_secret
        self.page_size = page_size
        self.advice_url = advice_url
        self.advice_api_key = advice_api_key
        self.advice_timeout_secs = advice_timeout_secs
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINDASH_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "findash.db"
    database_url = os.getenv("FINDASH_DATABASE_URL", f"sqlite:///{default_db}")
    identity_secret = os.getenv(
        "FINDASH_IDENTITY_SECRET",
        "4c1f0e7d2b9a58e3f6a7c0d1b2e3f4a5968778695a4b3c2d1e0f9a8b7c6d5e4f",
    )
    identity_max_age_secs = int(os.getenv("FINDASH_IDENTITY_MAX_AGE_SECS", "3600"))
    cursor_secret = os.getenv(
        "FINDASH_CURSOR_SECRET",
        "a7d3e9b1c5f20846d7e1a3b5c9f0e2d4b6a8c0e1f3a5b7c9d1e3f5a7b9c1d3e5",
    )
    page_size = int(os.getenv("FINDASH_PAGE_SIZE", "10"))
    advice_url = os.getenv("FINDASH_ADVICE_URL", "").rstrip("/")
    advice_api_key = os.getenv("FINDASH_ADVICE_API_KEY", "")
    advice_timeout_secs = float(os.getenv("FINDASH_ADVICE_TIMEOUT_SECS", "15"))
    log_level = os.getenv("FINDASH_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        identity_secret=identity_secret,
        identity_max_age_secs=identity_max_age_secs,
        cursor_secret=cursor_secret,
        page_size=page_size,
        advice_url=advice_url,
        advice_api_key=advice_api_key,
        advice_timeout_secs=advice_timeout_secs,
        log_level=log_level,
    )
