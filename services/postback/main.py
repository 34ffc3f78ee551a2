# services/postback/main.py

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from utils.logging import setup_logging
from database import engine, ensure_schema
from models import Base
from config import settings
from routers import postback as postback_router


# --- Логирование ---
logger = setup_logging()

# --- Приложение FastAPI ---
app = FastAPI(
    title=settings.SERVICE_NAME,
    version=settings.VERSION,
    description=(
        "Postback Service: приём постбэков партнёрской сети, журнал событий "
        "и агрегированные статусы трейдеров (регистрация, депозиты)."
    ),
)

# Партнёрские сети дёргают приёмник откуда угодно
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Метрики Prometheus ---
Instrumentator().instrument(app).expose(app, include_in_schema=False)


# --- События приложения ---
@app.on_event("startup")
def startup_event():
    """
    Проверяет секрет приёмника и создаёт схему и таблицы при запуске.
    Без POSTBACK_SECRET сервис не стартует: приёмник был бы открыт всем.
    """
    if not settings.POSTBACK_SECRET:
        logger.error("❌ POSTBACK_SECRET is not set")
        raise RuntimeError("POSTBACK_SECRET is not set")

    ensure_schema()
    Base.metadata.create_all(bind=engine)
    logger.info("✅ postback_service started and schema ensured.")


# --- Health & readiness ---
@app.get("/health", tags=["system"])
async def health():
    return {"status": "ok", "service": "postback"}


@app.get("/ready", tags=["system"])
async def ready():
    return {"status": "ready"}


@app.get("/", include_in_schema=False)
async def root():
    return {"message": "Postback Service is operational"}


# --- Маршруты доменной логики (постбэки) ---
app.include_router(postback_router.router)
