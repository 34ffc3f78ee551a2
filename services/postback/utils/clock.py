from datetime import datetime, timezone


def utcnow() -> datetime:
    """Текущее время UTC без tzinfo: в БД колонки DateTime хранятся naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
