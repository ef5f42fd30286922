from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    request_id_header: str = Field(default="X-Request-ID", alias="REQUEST_ID_HEADER")
    counters_path_suffix: str = Field(default="/__/counters", alias="COUNTERS_PATH_SUFFIX")
    enable_default_sink: bool = Field(default=True, alias="ENABLE_DEFAULT_SINK")
    sink_threads: int = Field(default=8, alias="SINK_THREADS")
    max_pending_deliveries: int = Field(default=10_000, alias="MAX_PENDING_DELIVERIES")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Example application only.
    access_log_path: str = Field(default="./access.log", alias="ACCESS_LOG_PATH")
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=8008, alias="PORT")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
