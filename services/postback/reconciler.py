# services/postback/reconciler.py

from typing import Optional

from errors import MissingTraderId
from schemas import ClassifiedEvent, EventKind, TraderStatusSnapshot
from utils.logging import setup_logging

logger = setup_logging()


def reconcile(
    trader_id: str,
    event: ClassifiedEvent,
    current: Optional[TraderStatusSnapshot],
) -> TraderStatusSnapshot:
    """
    Чистое слияние события со статусом трейдера.

      - registered / email_confirmed / deposited: OR с текущим значением,
        однажды включённый флаг не выключается;
      - ftd_at: время самого раннего ftd-события (при живом потоке это
        просто первая запись, при пересборке журнала порядок не важен);
      - суммы депозитов: последнее непустое значение;
      - last_event / last_event_at: всегда последнее событие, независимо от типа.
    """
    if current is None:
        current = TraderStatusSnapshot(trader_id=trader_id)

    ftd_at = current.ftd_at
    if event.kind == EventKind.FTD and (ftd_at is None or event.received_at < ftd_at):
        ftd_at = event.received_at

    return TraderStatusSnapshot(
        trader_id=trader_id,
        registered=current.registered or event.registered,
        email_confirmed=current.email_confirmed or event.conf,
        deposited=current.deposited or event.deposited,
        ftd_at=ftd_at,
        last_deposit_amount=(
            event.sum_dep if event.sum_dep is not None else current.last_deposit_amount
        ),
        total_deposits=(
            event.total_dep if event.total_dep is not None else current.total_deposits
        ),
        last_event=event.kind,
        last_event_at=event.received_at,
    )


def apply_event(store, event: ClassifiedEvent) -> TraderStatusSnapshot:
    """
    Применяет событие к статусу трейдера через атомарный upsert хранилища.
    Без trader_id ничего не пишет и бросает MissingTraderId.
    """
    trader_id = (event.trader_id or "").strip()
    if not trader_id:
        raise MissingTraderId(event.id)

    status = store.upsert_merge(
        trader_id,
        lambda current: reconcile(trader_id, event, current),
    )
    logger.debug(
        f"🔄 Status merged: trader_id={trader_id}, kind={event.kind.value}, "
        f"registered={status.registered}, deposited={status.deposited}"
    )
    return status
