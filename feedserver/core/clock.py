from datetime import datetime, timezone


class SystemTime:
    """
    Source of the current time. Injected so tests can pin timestamps.
    """

    def utc_now(self) -> datetime:
        return datetime.now(timezone.utc)
