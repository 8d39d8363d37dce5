"""Application configuration from environment variables."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    debug: bool = False

    # Database (defaults to a SQLite file next to the action file)
    database_url: str | None = None

    # Browser
    headless: bool = True
    timeout: int = 60000  # ms, applies to every browser operation
    delay: int = 1000  # ms between navigation steps
    retries: int = 3  # total attempts per navigation step

    # Images
    image_format: str = "jpg"

    model_config = {"env_prefix": "PLAYSCRAPE_", "env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
