# services/postback/store.py

"""
Хранилище постбэков и статусов трейдеров поверх SQLAlchemy.

Статус обновляется циклом compare-and-swap: читаем запись, применяем
чистую функцию слияния и пишем с проверкой версии. Если запись успели
изменить (StaleDataError) или создать (IntegrityError), откатываемся
и повторяем с перечитанными данными.
"""

from typing import Callable, List, Optional

from prometheus_client import Counter
from sqlalchemy.exc import DataError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import ConflictExceededRetries, StoreUnavailable, UnstorablePayload
from models import PostbackEvent, TraderStatus
from schemas import ClassifiedEvent, TraderStatusSnapshot
from utils.logging import setup_logging

logger = setup_logging()

RECONCILE_CONFLICTS = Counter(
    "postback_reconcile_conflicts_total",
    "Конфликты версий при слиянии статуса трейдера",
)

MergeFn = Callable[[Optional[TraderStatusSnapshot]], TraderStatusSnapshot]

STATUS_FIELDS = (
    "registered",
    "email_confirmed",
    "deposited",
    "ftd_at",
    "last_deposit_amount",
    "total_deposits",
    "last_event",
    "last_event_at",
)


class SqlStatusStore:
    """Журнал событий + текущие статусы в одной БД, сессия на запрос."""

    def __init__(self, db: Session, max_attempts: int = 5):
        self.db = db
        self.max_attempts = max(1, max_attempts)

    # ---------- Журнал ----------

    def insert_audit_event(self, event: ClassifiedEvent) -> ClassifiedEvent:
        """Сохраняет событие в журнал и возвращает его копию с id."""
        row = PostbackEvent(
            trader_id=event.trader_id,
            click_id=event.click_id,
            site_id=event.site_id,
            affiliate_id=event.affiliate_id,
            campaign_id=event.campaign_id,
            reg=event.reg,
            conf=event.conf,
            ftd=event.ftd,
            dep=event.dep,
            sum_dep=event.sum_dep,
            total_dep=event.total_dep,
            kind=event.kind.value,
            registered=event.registered,
            deposited=event.deposited,
            received_at=event.received_at,
            raw_payload=event.raw_payload,
        )
        try:
            self.db.add(row)
            self.db.commit()
            event_id = row.id
        except DataError as e:
            self.db.rollback()
            logger.error(f"❌ Audit insert rejected for trader_id={event.trader_id}: {e}")
            raise UnstorablePayload("postback values were rejected by the database") from e
        except (OperationalError, InterfaceError) as e:
            self.db.rollback()
            logger.error(f"❌ Audit insert failed: {e}")
            raise StoreUnavailable("postback audit log is unavailable") from e

        return event.model_copy(update={"id": event_id})

    def events_for_trader(self, trader_id: str) -> List[ClassifiedEvent]:
        """События трейдера из журнала, от старых к новым."""
        query = (
            self.db.query(PostbackEvent)
            .filter(PostbackEvent.trader_id == trader_id)
            .order_by(PostbackEvent.received_at.asc(), PostbackEvent.id.asc())
        )
        return [ClassifiedEvent.model_validate(row) for row in self._fetch(query)]

    def recent_events(
        self, limit: int = 100, trader_id: Optional[str] = None
    ) -> List[ClassifiedEvent]:
        """Последние события журнала, от новых к старым."""
        query = self.db.query(PostbackEvent)
        if trader_id:
            query = query.filter(PostbackEvent.trader_id == trader_id)
        query = query.order_by(
            PostbackEvent.received_at.desc(), PostbackEvent.id.desc()
        ).limit(limit)
        return [ClassifiedEvent.model_validate(row) for row in self._fetch(query)]

    # ---------- Статусы ----------

    def get(self, trader_id: str) -> Optional[TraderStatusSnapshot]:
        try:
            row = self.db.get(TraderStatus, trader_id, populate_existing=True)
        except (OperationalError, InterfaceError) as e:
            self.db.rollback()
            raise StoreUnavailable("trader status store is unavailable") from e
        return TraderStatusSnapshot.model_validate(row) if row is not None else None

    def upsert_merge(self, trader_id: str, merge_fn: MergeFn) -> TraderStatusSnapshot:
        """
        Атомарно применяет merge_fn к статусу трейдера.
        merge_fn может быть вызвана несколько раз, поэтому обязана быть чистой.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                row = self.db.get(TraderStatus, trader_id, populate_existing=True)
                current = (
                    TraderStatusSnapshot.model_validate(row) if row is not None else None
                )
                merged = merge_fn(current)

                if row is None:
                    row = TraderStatus(trader_id=trader_id)
                    self.db.add(row)
                for field in STATUS_FIELDS:
                    value = getattr(merged, field)
                    if field == "last_event" and value is not None:
                        value = value.value
                    setattr(row, field, value)

                self.db.commit()
                return merged
            except (StaleDataError, IntegrityError) as e:
                self.db.rollback()
                RECONCILE_CONFLICTS.inc()
                logger.warning(
                    f"⚠️ Status conflict for trader_id={trader_id} "
                    f"(attempt {attempt}/{self.max_attempts}): {e.__class__.__name__}"
                )
            except DataError as e:
                self.db.rollback()
                logger.error(f"❌ Status upsert rejected for trader_id={trader_id}: {e}")
                raise UnstorablePayload("trader status values were rejected by the database") from e
            except (OperationalError, InterfaceError) as e:
                self.db.rollback()
                logger.error(f"❌ Status upsert failed for trader_id={trader_id}: {e}")
                raise StoreUnavailable("trader status store is unavailable") from e

        logger.error(
            f"❌ Status of trader_id={trader_id} not merged after {self.max_attempts} attempts"
        )
        raise ConflictExceededRetries(trader_id, self.max_attempts)

    # ---------- Внутреннее ----------

    def _fetch(self, query):
        try:
            return query.all()
        except (OperationalError, InterfaceError) as e:
            self.db.rollback()
            raise StoreUnavailable("postback store is unavailable") from e
