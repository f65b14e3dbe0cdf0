import os
import secrets
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        auth_secret: str,
        token_max_age_hours: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.auth_secret = auth_secret
        self.token_max_age_hours = token_max_age_hours
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("ZBB_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("ZBB_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("ZBB_TIMEZONE", "Europe/Berlin")
    # Without a configured secret, tokens only survive until the process restarts.
    auth_secret = os.getenv("ZBB_AUTH_SECRET") or secrets.token_hex(32)
    token_max_age_hours = int(os.getenv("ZBB_TOKEN_MAX_AGE_HOURS", "24"))
    log_level = os.getenv("ZBB_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        auth_secret=auth_secret,
        token_max_age_hours=token_max_age_hours,
        log_level=log_level,
    )
