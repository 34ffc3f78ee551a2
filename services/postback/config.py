# services/postback/config.py

import os
from pydantic_settings import BaseSettings


def _split_csv(value: str) -> set[str]:
    """Разбирает список вида "a1, a2,a3" в множество непустых значений."""
    return {item.strip() for item in value.split(",") if item.strip()}


class Settings(BaseSettings):
    """
    Конфигурация postback — сервиса приёма постбэков партнёрской сети
    и агрегации статусов трейдеров.
    """

    # --- Общая информация ---
    SERVICE_NAME: str = "Postback Service"
    VERSION: str = "1.0.0"
    ENV: str = os.getenv("ENV", "dev")

    # --- Подключение к базе ---
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        "postgresql://postgres:postgres@db:5432/diploma"
    )
    DB_SCHEMA: str = os.getenv("DB_SCHEMA", "postback")

    # --- Доступ к приёмнику ---
    POSTBACK_SECRET: str = os.getenv("POSTBACK_SECRET", "")

    # --- Фильтры партнёров (пусто = принимаем всех) ---
    ALLOWED_AFFILIATE_IDS: str = os.getenv("ALLOWED_AFFILIATE_IDS", "")
    ALLOWED_CAMPAIGN_IDS: str = os.getenv("ALLOWED_CAMPAIGN_IDS", "")

    # --- Параметры обработки ---
    RECONCILE_MAX_ATTEMPTS: int = 5   # попыток compare-and-swap на один статус
    EVENTS_PAGE_LIMIT: int = 100      # максимум событий в выдаче /events
    MAX_BODY_BYTES: int = 256 * 1024  # тело POST больше этого: 413

    # --- Логирование ---
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def allowed_affiliates(self) -> set[str]:
        return _split_csv(self.ALLOWED_AFFILIATE_IDS)

    def allowed_campaigns(self) -> set[str]:
        return _split_csv(self.ALLOWED_CAMPAIGN_IDS)


# Глобальный объект конфигурации
settings = Settings()
