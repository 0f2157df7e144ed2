from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "overlay-service"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"
    cors_origins: list[str] = ["*"]

    allowed_hosts: list[str] = [
        "images.unsplash.com",
        "i.imgur.com",
        "raw.githubusercontent.com",
        "itimg.kr",
    ]
    max_fetch_bytes: int = 10 * 1024 * 1024
    fetch_timeout: float = 25.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )

    cache_path: str = "/app/cache"
    cache_ttl: int = 2592000
    cache_version: str = "v1"
    proxy_max_age: int = 31536000
    warm_max_concurrent: int = 5

    default_width: int = 1200
    default_height: int = 630
    padding: float = 40.0
    font_ratio: float = 0.04
    min_initial_font_size: float = 20.0
    line_height: float = 1.4
    min_font_size: float = 16.0
    font_step: float = 2.0
    max_text_height_ratio: float = 0.45

    embed_strategy: Literal["inline", "reference"] = "inline"
    public_base_url: str = ""
    require_text: bool = False
    error_format: Literal["svg", "text"] = "svg"


settings = Settings()
