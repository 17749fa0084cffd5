import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        secret_key: str,
        token_max_age_secs: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.secret_key = secret_key
        self.token_max_age_secs = token_max_age_secs
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite+aiosqlite:///{default_db}")
    secret_key = os.getenv(
        "LEDGER_SECRET_KEY",
        "0d5c3f0a8f4b4e7c9a61b2d7e3f8c1a4b6d9e2f5a7c0b3d6e9f1a4c7b0d3e6f9",
    )
    token_max_age_secs = int(os.getenv("LEDGER_TOKEN_MAX_AGE_SECS", "86400"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        secret_key=secret_key,
        token_max_age_secs=token_max_age_secs,
        log_level=log_level,
    )
