# services/postback/classifier.py

from datetime import datetime
from typing import Optional

from schemas import ClassifiedEvent, EventKind, NormalizedPayload
from utils.clock import utcnow

# Порядок важен: побеждает первый поднятый флаг.
# Один постбэк может нести сразу несколько флагов (депозит + повторная регистрация),
# в событие попадает самая "дорогая" веха.
KIND_PRIORITY = (
    ("ftd", EventKind.FTD),
    ("dep", EventKind.DEP),
    ("conf", EventKind.CONF),
    ("reg", EventKind.REG),
)


def pick_kind(payload: NormalizedPayload) -> EventKind:
    """Выбирает тип события по фиксированному приоритету ftd > dep > conf > reg."""
    for flag, kind in KIND_PRIORITY:
        if getattr(payload, flag):
            return kind
    return EventKind.OTHER


def classify(
    payload: NormalizedPayload,
    received_at: Optional[datetime] = None,
) -> ClassifiedEvent:
    """
    Превращает нормализованный пейлоад в событие журнала.

    registered / deposited считаются по всем флагам, а не только
    по победившему: депозит с reg=1 всё равно сообщает о регистрации.
    """
    return ClassifiedEvent(
        trader_id=payload.trader_id,
        click_id=payload.click_id,
        site_id=payload.site_id,
        affiliate_id=payload.affiliate_id,
        campaign_id=payload.campaign_id,
        reg=payload.reg,
        conf=payload.conf,
        ftd=payload.ftd,
        dep=payload.dep,
        sum_dep=payload.sum_dep,
        total_dep=payload.total_dep,
        kind=pick_kind(payload),
        registered=payload.reg or payload.conf,
        deposited=payload.ftd or payload.dep,
        received_at=received_at or utcnow(),
        raw_payload=dict(payload.raw),
    )
