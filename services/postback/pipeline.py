# services/postback/pipeline.py

from datetime import datetime
from typing import Any, Mapping, Optional, Tuple

from prometheus_client import Counter

from classifier import classify
from errors import MissingTraderId, UnstorablePayload
from payload import normalize_payload
from reconciler import apply_event, reconcile
from schemas import PostbackResult, TraderStatusSnapshot
from utils.logging import setup_logging

logger = setup_logging()

POSTBACK_EVENTS = Counter(
    "postback_events_total",
    "Классифицированные постбэки по типу события",
    ["kind"],
)


def process_postback(
    store,
    raw: Optional[Mapping[str, Any]],
    received_at: Optional[datetime] = None,
) -> PostbackResult:
    """
    Полный проход одного постбэка:
    нормализация -> классификация -> журнал -> слияние статуса.

    Журнал и статус пишутся разными транзакциями. Если процесс упадёт
    между ними, статус восстанавливается через replay_trader.
    """
    payload = normalize_payload(raw)
    event = classify(payload, received_at=received_at)
    POSTBACK_EVENTS.labels(kind=event.kind.value).inc()

    try:
        event = store.insert_audit_event(event)
    except UnstorablePayload:
        logger.warning(f"⚠️ Postback for trader_id={event.trader_id} could not be stored, dropped")
        return PostbackResult(
            accepted=False,
            event_kind=event.kind,
            registered=event.registered,
            deposited=event.deposited,
            skip_reason="unstorable",
        )
    logger.info(
        f"📥 Postback logged: id={event.id}, trader_id={event.trader_id}, "
        f"kind={event.kind.value}"
    )

    result = PostbackResult(
        accepted=True,
        event_kind=event.kind,
        registered=event.registered,
        deposited=event.deposited,
        event_id=event.id,
    )

    try:
        status = apply_event(store, event)
    except MissingTraderId:
        logger.warning(f"⚠️ Postback id={event.id} has no trader_id, status not updated")
        return result.model_copy(update={"skip_reason": "missing_trader_id"})
    except UnstorablePayload:
        logger.warning(f"⚠️ Status of trader_id={event.trader_id} not updated for id={event.id}")
        return result.model_copy(update={"skip_reason": "unstorable"})

    return result.model_copy(update={"reconciled": True, "status": status})


def replay_trader(store, trader_id: str) -> Tuple[int, Optional[TraderStatusSnapshot]]:
    """
    Пересобирает статус трейдера по журналу постбэков.

    Все события сворачиваются в один снимок и записываются одним upsert.
    Слияние идемпотентно, поэтому накладывать журнал поверх уже
    существующего статуса безопасно.
    """
    events = store.events_for_trader(trader_id)
    if not events:
        return 0, store.get(trader_id)

    def merge_all(current: Optional[TraderStatusSnapshot]) -> TraderStatusSnapshot:
        status = current
        for event in events:
            status = reconcile(trader_id, event, status)
        return status

    status = store.upsert_merge(trader_id, merge_all)
    logger.info(f"♻️ Replayed {len(events)} postbacks for trader_id={trader_id}")
    return len(events), status
