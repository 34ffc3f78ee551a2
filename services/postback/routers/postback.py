import hmac
import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from errors import ConflictExceededRetries, StoreUnavailable, UnstorablePayload
from payload import normalize_payload
from pipeline import process_postback, replay_trader
from schemas import (
    NormalizedPayload,
    PostbackEventOut,
    PostbackResult,
    ReplayResult,
    TraderStatusSnapshot,
)
from store import SqlStatusStore
from utils.logging import setup_logging

logger = setup_logging()

router = APIRouter(prefix="/api/v1/postback", tags=["postback"])


# ---------- Вспомогательные функции ----------


def get_store(db: Session = Depends(get_db)) -> SqlStatusStore:
    """Зависимость FastAPI: хранилище поверх сессии текущего запроса."""
    return SqlStatusStore(db, max_attempts=settings.RECONCILE_MAX_ATTEMPTS)


def check_secret(secret: Optional[str]) -> None:
    expected = settings.POSTBACK_SECRET
    if not expected or not secret or not hmac.compare_digest(
        secret.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("🚫 Postback rejected: bad secret")
        raise HTTPException(status_code=401, detail="bad_secret")


def payload_too_large(limit: int) -> HTTPException:
    logger.warning(f"🚫 Postback rejected: body exceeds {limit} bytes")
    return HTTPException(status_code=413, detail="payload_too_large")


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Читает тело не больше limit байт, иначе 413 (до разбора JSON/формы)."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise payload_too_large(limit)

    chunks: List[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > limit:
            raise payload_too_large(limit)
        chunks.append(chunk)
    return b"".join(chunks)


async def read_raw_payload(request: Request) -> Dict[str, Any]:
    """
    Собирает сырой пейлоад: query string + тело POST (JSON или urlencoded).
    Поля тела перекрывают одноимённые поля query.
    """
    raw: Dict[str, Any] = dict(request.query_params)

    if request.method == "POST":
        body = await read_limited_body(request, settings.MAX_BODY_BYTES)
        content_type = request.headers.get("content-type", "")
        if body and "json" in content_type:
            try:
                data = json.loads(body)
            except ValueError:
                logger.warning("⚠️ Postback body is not valid JSON, using query only")
                data = None
            if isinstance(data, dict):
                raw.update(data)
        elif body:
            raw.update(dict(parse_qsl(body.decode("utf-8", errors="replace"))))

    raw.pop("secret", None)
    raw["method"] = request.method
    return raw


def passes_filters(payload: NormalizedPayload) -> bool:
    """Белые списки партнёров и кампаний из конфигурации (пустой список: без фильтра)."""
    affiliates = settings.allowed_affiliates()
    if affiliates and payload.affiliate_id not in affiliates:
        return False

    campaigns = settings.allowed_campaigns()
    if campaigns and payload.campaign_id not in campaigns:
        return False

    return True


# ---------- Основной бизнес-эндпоинт ----------


@router.api_route("", methods=["GET", "POST"], response_model=PostbackResult)
async def receive_postback(
    request: Request,
    secret: Optional[str] = None,
    store: SqlStatusStore = Depends(get_store),
):
    """
    Универсальный приёмник постбэков партнёрской сети.
    Принимает и GET (всё в query), и POST (JSON или form body).

    Кривые поля и отфильтрованные партнёры ошибкой не считаются:
    отвечаем 200 с accepted=false. 503 только при недоступной БД
    или неразрешённом конфликте записи: такой постбэк можно повторить.
    """
    check_secret(secret)
    raw = await read_raw_payload(request)

    payload = normalize_payload(raw)
    if not passes_filters(payload):
        logger.info(
            f"🧹 Postback filtered: a={payload.affiliate_id}, ac={payload.campaign_id}"
        )
        return PostbackResult(accepted=False, skip_reason="filtered")

    try:
        return await run_in_threadpool(process_postback, store, raw)
    except StoreUnavailable as e:
        logger.error(f"❌ Postback store unavailable: {e}")
        raise HTTPException(status_code=503, detail="store_unavailable")
    except ConflictExceededRetries as e:
        logger.error(f"❌ {e}")
        raise HTTPException(
            status_code=503,
            detail="conflict_retry",
            headers={"Retry-After": "1"},
        )


# ---------- Служебные эндпойнты ----------


@router.get("/status/{trader_id}", response_model=TraderStatusSnapshot)
def get_trader_status(
    trader_id: str,
    store: SqlStatusStore = Depends(get_store),
):
    """Текущий агрегированный статус трейдера."""
    try:
        status = store.get(trader_id)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="store_unavailable")
    if status is None:
        raise HTTPException(status_code=404, detail="trader not found")
    return status


@router.get("/events", response_model=List[PostbackEventOut])
def list_events(
    trader_id: Optional[str] = None,
    limit: int = 100,
    store: SqlStatusStore = Depends(get_store),
):
    """
    Последние события журнала (все или по одному трейдеру).
    Полезно для сверок с партнёрской сетью.
    """
    if limit <= 0:
        raise HTTPException(status_code=400, detail="limit must be positive")
    limit = min(limit, settings.EVENTS_PAGE_LIMIT)

    try:
        events = store.recent_events(limit, trader_id=trader_id)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="store_unavailable")

    return [PostbackEventOut.model_validate(event) for event in events]


@router.post("/replay/{trader_id}", response_model=ReplayResult)
def replay_trader_status(
    trader_id: str,
    store: SqlStatusStore = Depends(get_store),
):
    """
    Пересобирает статус трейдера по журналу постбэков.
    Используется после сбоя между записью в журнал и обновлением статуса.
    """
    try:
        replayed, status = replay_trader(store, trader_id)
    except StoreUnavailable:
        raise HTTPException(status_code=503, detail="store_unavailable")
    except ConflictExceededRetries:
        raise HTTPException(
            status_code=503,
            detail="conflict_retry",
            headers={"Retry-After": "1"},
        )
    except UnstorablePayload:
        raise HTTPException(status_code=422, detail="unstorable")

    logger.info(f"♻️ Replay finished: trader_id={trader_id}, events={replayed}")
    return ReplayResult(trader_id=trader_id, replayed=replayed, status=status)
