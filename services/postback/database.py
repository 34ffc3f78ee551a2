# services/postback/database.py

from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from config import settings

DATABASE_URL = settings.DATABASE_URL

# SQLite (локальный запуск, тесты) не знает про схемы и потоки uvicorn
IS_SQLITE = DATABASE_URL.startswith("sqlite")

# Схема для постбэков и статусов трейдеров
POSTBACK_SCHEMA: Optional[str] = None if IS_SQLITE else settings.DB_SCHEMA

# Движок SQLAlchemy
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    future=True,
    connect_args={"check_same_thread": False} if IS_SQLITE else {},
)

# Фабрика сессий
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


class Base(DeclarativeBase):
    """Базовый класс моделей SQLAlchemy для postback."""
    pass


def ensure_schema() -> None:
    """Создаёт схему postback, если она ещё не существует."""
    if POSTBACK_SCHEMA is None:
        return
    with engine.begin() as conn:
        conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{POSTBACK_SCHEMA}"'))


def get_db():
    """Зависимость FastAPI для получения сессии БД."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
