from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8')

    app_name: str = 'fileshare'
    app_host: str = '0.0.0.0'
    app_port: int = 8080
    root_dir: str = ''
    intelligent_mime: str = ''
    upload_max_bytes: int = Field(default=100 * 1024 * 1024, ge=1)
    log_level: str = 'info'


settings = Settings()
