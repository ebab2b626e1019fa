from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # Backend REST API
    api_base_url: str = Field("http://localhost:5000/api/v1", alias="API_BASE_URL")
    request_timeout: float = Field(20.0, alias="REQUEST_TIMEOUT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Asset host (Cloudinary unsigned upload)
    cloudinary_url: str = Field("", alias="CLOUDINARY_URL")
    cloudinary_cloud_name: str = Field("", alias="CLOUDINARY_CLOUD_NAME")
    upload_preset_report: str = Field("", alias="UPLOAD_PRESET_REPORT")
    upload_preset_delivery: str = Field("", alias="UPLOAD_PRESET_DELIVERY")

    # User session data
    user_session_dir: str = Field("var/user_sessions", alias="USER_SESSION_DIR")
    download_dir: str = Field("var/downloads", alias="DOWNLOAD_DIR")
    cache_dir: str = Field("var/cache", alias="CACHE_DIR")

    # Bot / export
    bot_token: str = Field("", alias="TELEGRAM_BOT_TOKEN")
    allowed_user_ids_raw: str = Field("", alias="TELEGRAM_ALLOWED_USERS")
    report_template_path: str = Field("", alias="REPORT_TEMPLATE_PATH")
    reports_list_limit: int = Field(10, alias="REPORTS_LIST_LIMIT")

    @property
    def allowed_user_ids(self) -> List[str]:
        return [u.strip() for u in self.allowed_user_ids_raw.split(",") if u.strip()] if self.allowed_user_ids_raw else []


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
