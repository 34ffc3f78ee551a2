"""
Исключения postback-сервиса.

MissingTraderId не ошибка, а сигнал: событие записано в журнал,
но статус обновлять не для кого.
StoreUnavailable и ConflictExceededRetries означают временные сбои,
постбэк можно прислать (или переприменить) повторно.
"""


class PostbackError(Exception):
    """Базовое исключение сервиса."""


class MissingTraderId(PostbackError):
    def __init__(self, event_id=None):
        self.event_id = event_id
        super().__init__(f"trader_id is missing (event_id={event_id}), reconciliation skipped")


class StoreUnavailable(PostbackError):
    """Хранилище недоступно (сеть, пул соединений, БД перезапускается)."""


class ConflictExceededRetries(PostbackError):
    def __init__(self, trader_id: str, attempts: int):
        self.trader_id = trader_id
        self.attempts = attempts
        super().__init__(
            f"status of trader_id={trader_id} was not merged after {attempts} attempts"
        )


class UnstorablePayload(PostbackError):
    """БД отвергла значения события (DataError): повтор того же постбэка не поможет."""
