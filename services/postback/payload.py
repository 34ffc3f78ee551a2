# services/postback/payload.py

"""
Нормализация сырого пейлоада постбэка.

Партнёрская сеть шлёт всё подряд строками: "true", "1", 1, "yes"...
Здесь сырое отображение один раз превращается в NormalizedPayload,
дальше по конвейеру ходят только типизированные поля.
Ни одна функция модуля не бросает исключений на кривых данных.
"""

import math
from typing import Any, Mapping, Optional

from schemas import NormalizedPayload

TRUE_STRINGS = frozenset({"true", "1", "yes", "y"})

# Допустимые написания ключей (первое найденное непустое значение выигрывает)
FIELD_ALIASES = {
    "trader_id": ("trader_id", "traderId", "traderid"),
    "click_id": ("click_id", "clickId"),
    "site_id": ("site_id", "siteId"),
    "affiliate_id": ("a", "affiliate_id", "affiliateId"),
    "campaign_id": ("ac", "campaign_id", "campaignId"),
    "reg": ("reg",),
    "conf": ("conf",),
    "ftd": ("ftd",),
    "dep": ("dep",),
    "sum_dep": ("sumdep", "sumDep", "sum_dep"),
    "total_dep": ("totaldep", "totalDep", "total_dep"),
}


def as_bool(value: Any) -> bool:
    """True только для {True, "true", "1", 1, "yes", "y"}, всё остальное False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return False


def as_amount(value: Any) -> Optional[float]:
    """
    Сумма депозита: число или числовая строка.
    Пустое, нечисловое, отрицательное, NaN/inf -> None (а не 0).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    elif not isinstance(value, (int, float)):
        return None

    try:
        number = float(value)
    except (ValueError, OverflowError):
        return None

    if math.isnan(number) or math.isinf(number) or number < 0:
        return None
    return number


def as_identifier(value: Any) -> Optional[str]:
    """Непрозрачный идентификатор: строка без пробелов по краям, пустое -> None."""
    if value is None or isinstance(value, (dict, list, tuple, set)):
        return None
    text = str(value).replace("\x00", "").strip()
    return text or None


def sanitize_raw(value: Any) -> Any:
    """
    Готовит сырой пейлоад к записи в JSON-колонку: Postgres не принимает
    NaN/Infinity и символ \\u0000, такие значения заменяются на None / вырезаются.
    """
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, dict):
        return {sanitize_raw(str(key)): sanitize_raw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_raw(item) for item in value]
    return value


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES[field]:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def normalize_payload(raw: Optional[Mapping[str, Any]]) -> NormalizedPayload:
    """Единственная точка входа: сырое отображение -> NormalizedPayload."""
    raw = sanitize_raw(dict(raw or {}))

    return NormalizedPayload(
        trader_id=as_identifier(_pick(raw, "trader_id")),
        click_id=as_identifier(_pick(raw, "click_id")),
        site_id=as_identifier(_pick(raw, "site_id")),
        affiliate_id=as_identifier(_pick(raw, "affiliate_id")),
        campaign_id=as_identifier(_pick(raw, "campaign_id")),
        reg=as_bool(_pick(raw, "reg")),
        conf=as_bool(_pick(raw, "conf")),
        ftd=as_bool(_pick(raw, "ftd")),
        dep=as_bool(_pick(raw, "dep")),
        sum_dep=as_amount(_pick(raw, "sum_dep")),
        total_dep=as_amount(_pick(raw, "total_dep")),
        raw=raw,
    )
