"""Tests for breach episode merging."""

from datetime import timedelta

import pytest

from rpcwatch.infrastructure.monitoring.breaches import BreachRecorder
from rpcwatch.models.sla import BreachSeverity, BreachTransition, MetricKey, MetricType
from tests.test_doubles import T0, FlakyMetricSink

KEY = MetricKey("org-1", "eth-1")


class TestBreachMerging:

    @pytest.mark.asyncio
    async def test_observations_within_gap_merge(self, breach_recorder):
        await breach_recorder.record(KEY, MetricType.UPTIME, 80.0, T0)
        episode, transition = await breach_recorder.record(KEY, MetricType.UPTIME, 70.0, T0 + timedelta(minutes=5))

        episodes = await breach_recorder.get_breaches("org-1", "eth-1")
        assert transition == BreachTransition.EXTENDED
        assert len(episodes) == 1
        assert episode.start_time == T0
        assert episode.end_time == T0 + timedelta(minutes=5)
        assert episode.duration_minutes == 5.0

    @pytest.mark.asyncio
    async def test_gap_over_limit_opens_new_episode(self, breach_recorder):
        await breach_recorder.record(KEY, MetricType.UPTIME, 80.0, T0)
        _, transition = await breach_recorder.record(
            KEY, MetricType.UPTIME, 80.0, T0 + timedelta(minutes=5, seconds=1)
        )

        episodes = await breach_recorder.get_breaches("org-1", "eth-1")
        assert transition == BreachTransition.OPENED
        assert len(episodes) == 2
        assert all(e.duration_minutes == 0 for e in episodes)
        assert episodes[0].start_time > episodes[1].start_time

    @pytest.mark.asyncio
    async def test_chain_of_observations_extends_one_episode(self, breach_recorder):
        for minute in range(0, 21, 4):
            await breach_recorder.record(KEY, MetricType.ERROR_RATE, 0.0, T0 + timedelta(minutes=minute))

        episodes = await breach_recorder.get_breaches("org-1", "eth-1")
        assert len(episodes) == 1
        assert episodes[0].duration_minutes == (episodes[0].end_time - episodes[0].start_time).total_seconds() / 60
        assert episodes[0].duration_minutes == 20.0

    @pytest.mark.asyncio
    async def test_metric_types_and_keys_do_not_merge(self, breach_recorder):
        await breach_recorder.record(KEY, MetricType.UPTIME, 80.0, T0)
        await breach_recorder.record(KEY, MetricType.ERROR_RATE, 80.0, T0 + timedelta(minutes=1))
        await breach_recorder.record(MetricKey("org-1"), MetricType.UPTIME, 80.0, T0 + timedelta(minutes=1))

        assert len(await breach_recorder.get_breaches("org-1", "eth-1")) == 2
        assert len(await breach_recorder.get_breaches("org-1")) == 3


class TestSeverity:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("compliance,severity", [
        (94.0, BreachSeverity.MAJOR),
        (90.0, BreachSeverity.MAJOR),
        (89.9, BreachSeverity.CRITICAL),
        (0.0, BreachSeverity.CRITICAL),
    ])
    async def test_severity_on_open(self, breach_recorder, compliance, severity):
        episode, _ = await breach_recorder.record(KEY, MetricType.UPTIME, compliance, T0)

        assert episode.severity == severity

    @pytest.mark.asyncio
    async def test_severity_kept_on_extension(self, breach_recorder):
        await breach_recorder.record(KEY, MetricType.UPTIME, 93.0, T0)
        episode, _ = await breach_recorder.record(KEY, MetricType.UPTIME, 10.0, T0 + timedelta(minutes=1))

        assert episode.severity == BreachSeverity.MAJOR


class TestSinkDelivery:

    @pytest.mark.asyncio
    async def test_transitions_reach_sink(self, store):
        sink = FlakyMetricSink()
        recorder = BreachRecorder(store, sink)

        await recorder.record(KEY, MetricType.UPTIME, 50.0, T0)
        await recorder.record(KEY, MetricType.UPTIME, 50.0, T0 + timedelta(minutes=1))

        assert [t for _, t in sink.breaches] == [BreachTransition.OPENED, BreachTransition.EXTENDED]

    @pytest.mark.asyncio
    async def test_sink_failure_keeps_episode(self, store):
        recorder = BreachRecorder(store, FlakyMetricSink(available=False))

        await recorder.record(KEY, MetricType.UPTIME, 50.0, T0)

        assert len(await recorder.get_breaches("org-1", "eth-1")) == 1
