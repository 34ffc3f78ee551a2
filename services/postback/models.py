# services/postback/models.py

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base, POSTBACK_SCHEMA
from utils.clock import utcnow


class PostbackEvent(Base):
    """
    Журнал постбэков (аудит).
    Каждый входящий вызов сохраняется один раз и больше не меняется:
    по этому журналу статусы трейдеров можно пересобрать в любой момент.
    """
    __tablename__ = "postbacks"
    __table_args__ = (
        Index("ix_postbacks_trader_received", "trader_id", "received_at"),
        {"schema": POSTBACK_SCHEMA},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)

    # Идентификаторы атрибуции (все опциональны, длина партнёром не ограничена)
    trader_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    click_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    site_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    affiliate_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    campaign_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Нормализованные флаги постбэка
    reg: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    conf: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ftd: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    dep: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    sum_dep: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_dep: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Результат классификации
    kind: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    registered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deposited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    received_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
    )

    # Исходный пейлоад как пришёл (для разбора инцидентов и повторной обработки)
    raw_payload: Mapped[dict] = mapped_column(JSON, nullable=False)


class TraderStatus(Base):
    """
    Агрегированный статус трейдера, одна запись на trader_id.
    Флаги registered / email_confirmed / deposited только включаются,
    ftd_at после установки не стирается.
    """
    __tablename__ = "trader_status"
    __table_args__ = {"schema": POSTBACK_SCHEMA}

    trader_id: Mapped[str] = mapped_column(Text, primary_key=True)

    registered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deposited: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    ftd_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    last_deposit_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_deposits: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    last_event: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    last_event_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    # Версия записи для оптимистической блокировки (UPDATE ... WHERE version = :v)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
