from datetime import datetime, timezone


def to_epoch_ms(ts: datetime) -> int:
    """
    Returns Unix epoch milliseconds for the given time (naive times are UTC).
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)


def from_epoch_ms(epoch_ms: int) -> datetime:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


def now_ms() -> int:
    return to_epoch_ms(datetime.now(timezone.utc))
