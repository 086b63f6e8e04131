from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as naive UTC, the form MongoDB hands back on reads."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
