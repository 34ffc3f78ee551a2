import sys
from loguru import logger
from config import settings

_configured = False


def setup_logging():
    """
    Настраивает loguru-логгер для postback-сервиса.

    Логи идут в stdout: в dev цветным текстом, в остальных окружениях
    JSON-строками (их забирает сборщик логов контейнеров).
    Модули вызывают setup_logging() при импорте, настройка выполняется один раз.
    """
    global _configured
    if _configured:
        return logger

    logger.remove()
    logger.configure(extra={"service": "postback"})

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<magenta>{extra[service]}</magenta> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
        "<level>{message}</level>"
    )

    level = settings.LOG_LEVEL.upper()
    logger.add(
        sys.stdout,
        colorize=settings.ENV == "dev",
        serialize=settings.ENV != "dev",
        format=log_format,
        level=level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )

    _configured = True
    logger.info(f"📜 Logging initialized for postback (env={settings.ENV}, level={level})")
    return logger
