# app/config.py
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str
    env: Literal["dev", "stage", "prod"] = "dev"
    debug: bool = False
    log_level: str = "INFO"
    access_log: bool = True
    sql_echo: bool = False
    auto_init_db: bool = True

    # External identity source (member lookup service)
    identity_source_base_url: str = "https://robertsspaceindustries.com"
    identity_source_handle_path: str = "/api/spectrum/member/info/nickname"
    identity_source_id_path: str = "/api/spectrum/member/info/id"
    identity_source_token: Optional[str] = None
    identity_lookup_timeout_seconds: float = 10.0

    # Pagination
    default_page_size: int = 20
    max_page_size: int = 100

    @property
    def is_dev(self) -> bool:
        return self.env == "dev" or self.debug is True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
