"""
Unit tests for the EventBus.

Purpose
-------
Validate subscription, wildcard matching, tiered execution and error
isolation of the in-process change-signal bus.

Test Coverage
-------------
- Exact and wildcard subscriptions
- One-shot listeners and duplicate prevention
- Tier ordering (CRITICAL before HIGH before NORMAL)
- Listener failures isolated and counted
- Timeouts on sequential tiers
- LOW tier fire-and-forget with drain()
"""

import asyncio

import pytest

from progression.core.event.bus import EventBus
from progression.core.event.registry import matches
from progression.core.event.types import ListenerPriority


@pytest.fixture
def bus():
    return EventBus()


# ============================================================================
# SUBSCRIPTIONS
# ============================================================================


@pytest.mark.unit
class TestSubscriptions:
    """Test subscribe/unsubscribe behaviour."""

    async def test_exact_subscription_receives_payload(self, bus):
        """A listener receives the published payload."""
        received = []

        async def listener(payload):
            received.append(payload)

        bus.subscribe("points.balance_changed", listener)
        await bus.publish("points.balance_changed", {"user_id": "u-1", "delta": 50})

        assert received == [{"user_id": "u-1", "delta": 50}]

    async def test_other_events_are_not_delivered(self, bus):
        received = []

        async def listener(payload):
            received.append(payload)

        bus.subscribe("points.balance_changed", listener)
        await bus.publish("reward.redeemed", {"user_id": "u-1"})

        assert received == []

    async def test_wildcard_subscription(self, bus):
        """Wildcards match across the dotted name."""
        received = []

        async def listener(payload):
            received.append(payload["n"])

        bus.subscribe("challenge.*", listener, identifier="challenges")
        bus.subscribe("*", listener, identifier="everything")

        await bus.publish("challenge.completed", {"n": 1})
        await bus.publish("reward.redeemed", {"n": 2})

        assert sorted(received) == [1, 1, 2]

    async def test_once_listener_runs_once(self, bus):
        calls = []

        async def listener(payload):
            calls.append(payload)

        bus.subscribe("streak.checked_in", listener, once=True)
        await bus.publish("streak.checked_in", {"streak": 1})
        await bus.publish("streak.checked_in", {"streak": 2})

        assert calls == [{"streak": 1}]
        assert bus.get_listener_count("streak.checked_in") == 0

    async def test_unsubscribe(self, bus):
        calls = []

        async def listener(payload):
            calls.append(payload)

        listener_id = bus.subscribe("reward.redeemed", listener)

        assert bus.unsubscribe("reward.redeemed", listener_id) is True
        await bus.publish("reward.redeemed", {})
        assert calls == []
        assert bus.unsubscribe("reward.redeemed", listener_id) is False

    def test_duplicate_identifiers_are_prevented(self, bus):
        async def listener(payload):
            return None

        bus.subscribe("reward.redeemed", listener, identifier="same")
        bus.subscribe("reward.redeemed", listener, identifier="same")

        assert bus.get_listener_count("reward.redeemed") == 1

    def test_callback_must_take_one_argument(self, bus):
        """Listeners that cannot accept the payload are refused."""

        async def no_args():
            return None

        async def two_args(payload, extra):
            return None

        with pytest.raises(ValueError):
            bus.subscribe("reward.redeemed", no_args)
        with pytest.raises(ValueError):
            bus.subscribe("reward.redeemed", two_args)

    def test_clear(self, bus):
        async def listener(payload):
            return None

        bus.subscribe("a", listener, identifier="a")
        bus.subscribe("b.*", listener, identifier="b")
        assert bus.get_registered_events() == ["a", "b.*"]

        bus.clear()

        assert bus.get_listener_count() == 0


@pytest.mark.unit
class TestWildcardMatching:
    """Test the registry's pattern matching."""

    @pytest.mark.parametrize(
        "event_name,pattern,expected",
        [
            ("points.balance_changed", "*", True),
            ("points.balance_changed", "points.*", True),
            ("challenge.completed", "*.completed", True),
            ("points.balance_changed", "reward.*", False),
            ("points.balance_changed", "points.balance_changed", True),
            ("points.balance_changed", "points.balance", False),
        ],
    )
    def test_matches(self, event_name, pattern, expected):
        assert matches(event_name, pattern) is expected


# ============================================================================
# EXECUTION
# ============================================================================


@pytest.mark.unit
class TestExecution:
    """Test tiered execution and error isolation."""

    async def test_sequential_tiers_run_before_normal(self, bus):
        order = []

        def recorder(label):
            async def listener(payload):
                order.append(label)
                return label

            return listener

        bus.subscribe("e", recorder("normal"), identifier="n")
        bus.subscribe("e", recorder("high"), priority=ListenerPriority.HIGH, identifier="h")
        bus.subscribe(
            "e", recorder("critical"), priority=ListenerPriority.CRITICAL, identifier="c"
        )

        results = await bus.publish("e", {})

        assert order == ["critical", "high", "normal"]
        assert results == ["critical", "high", "normal"]

    async def test_sync_callbacks_are_supported(self, bus):
        received = []

        def listener(payload):
            received.append(payload["value"])
            return "sync"

        bus.subscribe("e", listener)
        results = await bus.publish("e", {"value": 3})

        assert received == [3]
        assert results == ["sync"]

    async def test_failing_listener_is_isolated(self, bus):
        """One broken listener neither raises nor stops the others."""
        received = []

        async def broken(payload):
            raise RuntimeError("listener down")

        async def healthy(payload):
            received.append(payload)

        bus.subscribe("reward.redeemed", broken, identifier="broken")
        bus.subscribe("reward.redeemed", healthy, identifier="healthy")

        results = await bus.publish("reward.redeemed", {"id": 1})

        assert received == [{"id": 1}]
        assert None in results
        metrics = bus.get_metrics()
        assert metrics.listener_errors == {"reward.redeemed": 1}
        assert metrics.events_published == {"reward.redeemed": 1}

    async def test_slow_critical_listener_times_out(self):
        bus = EventBus(critical_timeout_seconds=0.05)

        async def slow(payload):
            await asyncio.sleep(1)

        bus.subscribe("e", slow, priority=ListenerPriority.CRITICAL)
        results = await bus.publish("e", {})

        assert results == [None]
        assert bus.get_metrics().listener_errors == {"e": 1}

    async def test_low_priority_is_fire_and_forget(self, bus):
        """LOW listeners are not awaited by publish but finish on drain."""
        gate = asyncio.Event()
        done = []

        async def background(payload):
            await gate.wait()
            done.append(payload)

        bus.subscribe("e", background, priority=ListenerPriority.LOW)
        results = await bus.publish("e", {"x": 1})

        assert results == []
        assert done == []
        assert bus.get_background_task_count() == 1

        gate.set()
        assert await bus.drain() == 1
        assert done == [{"x": 1}]

    async def test_publish_without_listeners(self, bus):
        assert await bus.publish("nobody.listens", {}) == []
        assert bus.get_metrics().events_published == {"nobody.listens": 1}

    def test_metrics_can_be_disabled(self):
        assert EventBus(enable_metrics=False).get_metrics() is None

    def test_timeouts_come_from_config(self, mock_config_manager):
        mock_config_manager.get.side_effect = lambda key, default=None: 1.5
        bus = EventBus(config_manager=mock_config_manager)

        assert bus._critical_timeout == 1.5
        assert bus._high_timeout == 1.5
