"""Настройки витрины и сервиса каталога (переменные окружения LESSONS_*)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).resolve().parents[1]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class Settings(BaseSettings):
    # клиент
    api_base_url: str = "http://localhost:3000"
    display_floor: int = 5  # 0 отключает подмену
    reset_delay: float = 3.0
    request_timeout: Optional[float] = None  # None - без таймаута

    # сервис каталога
    seed_path: str = str(ROOT_DIR / "data" / "lessons.json")
    host: str = "127.0.0.1"
    port: int = 3000

    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="LESSONS_", env_file=".env")


def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
