import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        default_user_id: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.default_user_id = default_user_id


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Asia/Kolkata")
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    default_user_id = int(os.getenv("LEDGER_DEFAULT_USER_ID", "1"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        default_user_id=default_user_id,
    )


def get_current_user_id() -> int:
    return get_settings().default_user_id
