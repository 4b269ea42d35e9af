"""Wall-clock implementation of IClock."""

from datetime import datetime, timezone

from rpcwatch.models.interfaces import IClock


class SystemClock(IClock):
    """UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
