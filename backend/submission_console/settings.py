from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",
        extra="ignore",
    )

    app_name: str = "submission-console"
    environment: str = Field(default="local", validation_alias=AliasChoices("ENVIRONMENT", "SUBMISSION_CONSOLE_ENVIRONMENT"))
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "SUBMISSION_CONSOLE_LOG_LEVEL"))
    pipeline_base_url: str = Field(
        default="http://127.0.0.1:8765",
        validation_alias=AliasChoices("PIPELINE_BASE_URL", "SUBMISSION_CONSOLE_PIPELINE_BASE_URL"),
    )
    pipeline_timeout_sec: float = Field(default=30, validation_alias=AliasChoices("PIPELINE_TIMEOUT_SEC", "SUBMISSION_CONSOLE_PIPELINE_TIMEOUT_SEC"))
    list_poll_interval_sec: float = Field(default=3, validation_alias=AliasChoices("LIST_POLL_INTERVAL_SEC", "SUBMISSION_CONSOLE_LIST_POLL_INTERVAL_SEC"))
    detail_poll_interval_sec: float = Field(default=3, validation_alias=AliasChoices("DETAIL_POLL_INTERVAL_SEC", "SUBMISSION_CONSOLE_DETAIL_POLL_INTERVAL_SEC"))
    upload_status_poll_interval_sec: float = Field(
        default=2,
        validation_alias=AliasChoices("UPLOAD_STATUS_POLL_INTERVAL_SEC", "SUBMISSION_CONSOLE_UPLOAD_STATUS_POLL_INTERVAL_SEC"),
    )
    default_page_size: int = Field(default=20, validation_alias=AliasChoices("DEFAULT_PAGE_SIZE", "SUBMISSION_CONSOLE_DEFAULT_PAGE_SIZE"))
    quick_fill_page_size: int = Field(default=10, validation_alias=AliasChoices("QUICK_FILL_PAGE_SIZE", "SUBMISSION_CONSOLE_QUICK_FILL_PAGE_SIZE"))
    video_url_base: str = Field(
        default="https://www.bilibili.com/video/",
        validation_alias=AliasChoices("VIDEO_URL_BASE", "SUBMISSION_CONSOLE_VIDEO_URL_BASE"),
    )

    @property
    def commands_url(self) -> str:
        return self.pipeline_base_url.rstrip("/") + "/api/commands"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
