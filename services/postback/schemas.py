from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Каноничный тип события постбэка."""
    FTD = "ftd"
    DEP = "dep"
    CONF = "conf"
    REG = "reg"
    OTHER = "other"


class NormalizedPayload(BaseModel):
    """
    Пейлоад постбэка после нормализации: строки-идентификаторы,
    булевы флаги и суммы уже приведены к своим типам.
    """
    model_config = ConfigDict(frozen=True)

    trader_id: Optional[str] = None
    click_id: Optional[str] = None
    site_id: Optional[str] = None
    affiliate_id: Optional[str] = None
    campaign_id: Optional[str] = None

    reg: bool = False
    conf: bool = False
    ftd: bool = False
    dep: bool = False

    sum_dep: Optional[float] = None
    total_dep: Optional[float] = None

    raw: Dict[str, Any] = Field(default_factory=dict)


class ClassifiedEvent(BaseModel):
    """
    Классифицированное событие, то самое, что пишется в журнал постбэков.
    id появляется только после сохранения.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None

    trader_id: Optional[str] = None
    click_id: Optional[str] = None
    site_id: Optional[str] = None
    affiliate_id: Optional[str] = None
    campaign_id: Optional[str] = None

    reg: bool = False
    conf: bool = False
    ftd: bool = False
    dep: bool = False

    sum_dep: Optional[float] = None
    total_dep: Optional[float] = None

    kind: EventKind
    registered: bool
    deposited: bool
    received_at: datetime
    raw_payload: Dict[str, Any] = Field(default_factory=dict)


class TraderStatusSnapshot(BaseModel):
    """Снимок агрегированного статуса трейдера."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    trader_id: str
    registered: bool = False
    email_confirmed: bool = False
    deposited: bool = False
    ftd_at: Optional[datetime] = None
    last_deposit_amount: Optional[float] = None
    total_deposits: Optional[float] = None
    last_event: Optional[EventKind] = None
    last_event_at: Optional[datetime] = None


class PostbackResult(BaseModel):
    """
    Ответ приёмника постбэков.
    Транспортному слою не нужно ничего пересчитывать: всё уже здесь.
    """
    ok: bool = True
    accepted: bool = Field(description="Постбэк прошёл фильтры и записан в журнал")
    event_kind: Optional[EventKind] = None
    registered: bool = False
    deposited: bool = False
    reconciled: bool = Field(
        default=False,
        description="Статус трейдера обновлён (false, если trader_id не пришёл или постбэк отфильтрован)",
    )
    skip_reason: Optional[str] = None
    event_id: Optional[int] = None
    status: Optional[TraderStatusSnapshot] = None


class PostbackEventOut(BaseModel):
    """DTO для отдачи события из журнала (отладка, сверки с партнёркой)."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    trader_id: Optional[str]
    click_id: Optional[str]
    site_id: Optional[str]
    affiliate_id: Optional[str]
    campaign_id: Optional[str]
    kind: EventKind
    registered: bool
    deposited: bool
    sum_dep: Optional[float]
    total_dep: Optional[float]
    received_at: datetime


class ReplayResult(BaseModel):
    """Результат пересборки статуса трейдера по журналу."""
    trader_id: str
    replayed: int = Field(description="Сколько событий журнала применено")
    status: Optional[TraderStatusSnapshot] = None
