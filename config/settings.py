from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Server
    DASHBOARD_PORT: int = 8001
    LOG_LEVEL: str = "INFO"

    # Harvest loop
    HARVEST_PAUSE_SECONDS: float = 2.0
    HARVEST_MAX_IDLE_ROUNDS: int = 3
    HARVEST_MAX_ITEMS: int = 1000

    # Browser
    BROWSER_HEADLESS: bool = True
    BROWSER_LOCALE: str = "en-US"
    MAPS_LANGUAGE: str = "en"

    # Review list interaction
    SCROLL_STEP_PX: int = 2000
    RENDER_WAIT_MS: int = 3000
    EXPAND_WAIT_MS: int = 2000
    SHARE_DIALOG_WAIT_MS: int = 2000
    REVIEWS_WAIT_TIMEOUT_MS: int = 10000
    CAPTURE_SHARE_URLS: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
