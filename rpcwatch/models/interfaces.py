# File: rpcwatch/models/interfaces.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from rpcwatch.models.sla import AlertEvent, BreachEpisode, BreachTransition, SLAMetric


class IClock(ABC):
    """Source of the current time.

    Every "now" in the engine is read through this interface so tests can
    drive probe timestamps, breach merging and retention deterministically.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        pass


class IMetricStore(ABC):
    """Keyed storage for metric history, breach episodes and alerts.

    The engine treats the store as an external collaborator; it never assumes
    anything about durability. Keys are namespaced strings of the form
    ``<namespace>:<org_id>:<endpoint_id|global>``.

    Consistency Notes:
        - append() is atomic per key with respect to other store calls
        - scan_prefix() returns a snapshot; later writes are not reflected
        - evict() drops values for which the predicate returns True
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored at key, or None."""
        pass

    @abstractmethod
    async def put(self, key: str, value: Any) -> None:
        """Store value at key, replacing any previous value."""
        pass

    @abstractmethod
    async def append(self, key: str, value: Any, limit: Optional[int] = None) -> List[Any]:
        """Append value to the list stored at key.

        Args:
            key: Storage key
            value: Item to append
            limit: If given, keep only the most recent ``limit`` items

        Returns:
            The items evicted because of the limit (oldest first)
        """
        pass

    @abstractmethod
    async def scan_prefix(self, prefix: str) -> Dict[str, Any]:
        """Return a snapshot of every key/value whose key starts with prefix."""
        pass

    @abstractmethod
    async def evict(self, prefix: str, predicate: Callable[[Any], bool]) -> int:
        """Remove list items under prefix matching predicate.

        Returns:
            Number of items removed
        """
        pass


class IMetricSink(ABC):
    """Downstream consumer of SLA metrics and breach transitions.

    Typically a persistence layer. Implementations may be unavailable at any
    time; callers must tolerate failures without losing in-memory state.
    """

    @abstractmethod
    async def write_metric(self, metric: SLAMetric) -> None:
        pass

    @abstractmethod
    async def write_breach(self, episode: BreachEpisode, transition: BreachTransition) -> None:
        pass


class IAlertSink(ABC):
    """Destination for alert lifecycle events (log, webhook, pager...)."""

    @abstractmethod
    async def deliver(self, event: AlertEvent) -> None:
        """Deliver one alert event.

        Raises:
            Any exception on delivery failure; the alert manager logs it and
            keeps its in-memory state.
        """
        pass


class IConfigSource(ABC):
    """Supplies endpoint records at startup and on reload."""

    @abstractmethod
    async def load(self) -> List[Dict[str, Any]]:
        """Return raw endpoint records.

        Raises:
            ConfigurationException: When the source cannot be read or parsed
        """
        pass


JobCallback = Callable[[], Awaitable[None]]


class IScheduler(ABC):
    """Runs named coroutine jobs on fixed intervals.

    Each job is independent: stopping one never affects the others, and a
    failing tick is logged without cancelling the job.
    """

    @abstractmethod
    def schedule(self, name: str, interval_seconds: float, callback: JobCallback) -> None:
        pass

    @abstractmethod
    async def cancel(self, name: str) -> None:
        """Stop a job; the tick currently running (if any) is allowed to finish."""
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Stop every job."""
        pass
