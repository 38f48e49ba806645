from datetime import datetime

LOG_TIMESTAMP = "%d/%m/%Y %H:%M:%S"
ARCHIVE_TIMESTAMP = "%Y%m%d-%H%M%S"


def now() -> datetime:
    return datetime.now()


def log_stamp(moment: datetime | None = None) -> str:
    """DD/MM/YYYY HH:MM:SS, the timestamp used in every log header."""
    return (moment or now()).strftime(LOG_TIMESTAMP)


def archive_stamp(moment: datetime | None = None) -> str:
    return (moment or now()).strftime(ARCHIVE_TIMESTAMP)


def format_duration(seconds: float) -> str:
    """Whole minutes and seconds, e.g. 185.7 -> '3m 5s'."""
    total = int(seconds)
    return f"{total // 60}m {total % 60}s"
