"""
Breach episode recording

Turns individual breach observations into merged episodes: an observation
within the merge gap of the latest episode for the same metric and key
extends it, otherwise a new episode opens.
"""

import uuid
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from rpcwatch.infrastructure.locks import KeyedLocks
from rpcwatch.infrastructure.logging import get_logger
from rpcwatch.models.interfaces import IMetricSink, IMetricStore
from rpcwatch.models.sla import (
    BreachEpisode,
    BreachTransition,
    MetricKey,
    MetricType,
    episode_severity,
)

BREACH_NAMESPACE = "breaches"


class BreachRecorder:
    """Owns BreachEpisode history per (organization, endpoint-or-global)."""

    def __init__(
        self,
        store: IMetricStore,
        sink: IMetricSink,
        merge_gap_minutes: float = 5.0,
        history_limit: int = 1000,
    ):
        self.logger = get_logger(__name__)
        self.store = store
        self.sink = sink
        self.merge_gap = timedelta(minutes=merge_gap_minutes)
        self.history_limit = history_limit
        self._locks = KeyedLocks()

    async def record(
        self,
        key: MetricKey,
        metric_type: MetricType,
        compliance: float,
        observed_at: datetime,
    ) -> Tuple[BreachEpisode, BreachTransition]:
        """
        Record one breach observation.

        Severity is fixed when the episode opens (critical below 90 %
        compliance, major otherwise) and kept on extension.

        Returns:
            The affected episode and whether it was opened or extended
        """
        storage_key = key.storage_key(BREACH_NAMESPACE)
        async with self._locks(storage_key):
            episodes: List[BreachEpisode] = await self.store.get(storage_key) or []
            latest = self._latest(episodes, metric_type)

            if latest is not None and observed_at - latest.end_time <= self.merge_gap:
                latest.extend(observed_at)
                await self.store.put(storage_key, episodes)
                episode, transition = latest, BreachTransition.EXTENDED
            else:
                episode = BreachEpisode(
                    episode_id=uuid.uuid4().hex,
                    org_id=key.org_id,
                    endpoint_id=key.endpoint_id,
                    metric_type=metric_type,
                    start_time=observed_at,
                    end_time=observed_at,
                    severity=episode_severity(compliance),
                )
                await self.store.append(storage_key, episode, limit=self.history_limit)
                transition = BreachTransition.OPENED
                self.logger.warning(
                    "sla_breach_opened",
                    org_id=key.org_id,
                    endpoint_id=key.endpoint_id,
                    metric_type=metric_type.value,
                    compliance=compliance,
                    severity=episode.severity.value,
                )

        try:
            await self.sink.write_breach(episode, transition)
        except Exception as e:
            self.logger.error("breach_sink_write_failed", episode_id=episode.episode_id, error=str(e))
        return episode, transition

    async def get_breaches(self, org_id: str, endpoint_id: Optional[str] = None) -> List[BreachEpisode]:
        """Episodes for one key, or for every key of the organization when
        endpoint_id is None. Newest first."""
        if endpoint_id is not None:
            episodes = await self.store.get(MetricKey(org_id, endpoint_id).storage_key(BREACH_NAMESPACE)) or []
        else:
            snapshot = await self.store.scan_prefix(MetricKey.org_prefix(BREACH_NAMESPACE, org_id))
            episodes = [episode for items in snapshot.values() for episode in items]
        return sorted(episodes, key=lambda e: e.start_time, reverse=True)

    async def count(self) -> int:
        snapshot = await self.store.scan_prefix(f"{BREACH_NAMESPACE}:")
        return sum(len(items) for items in snapshot.values())

    async def evict_before(self, cutoff: datetime) -> int:
        return await self.store.evict(f"{BREACH_NAMESPACE}:", lambda episode: episode.end_time < cutoff)

    @staticmethod
    def _latest(episodes: List[BreachEpisode], metric_type: MetricType) -> Optional[BreachEpisode]:
        latest = None
        for episode in episodes:
            if episode.metric_type == metric_type and (latest is None or episode.end_time >= latest.end_time):
                latest = episode
        return latest
