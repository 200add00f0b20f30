"""Tests for the monitoring CLI."""

from unittest.mock import AsyncMock

import pytest

from shared_pubsub.cli import bus_monitor


@pytest.fixture
def monitored(monkeypatch):
    gateway = AsyncMock()
    monkeypatch.setattr(bus_monitor, "_gateway", lambda redis_url=None: gateway)
    return gateway


class TestBusMonitor:
    """Test suite for the monitor commands."""

    @pytest.mark.asyncio
    async def test_list_topics(self, monitored, capsys):
        """Test topics are printed as a table and the gateway closed."""
        monitored.list_topics.return_value = [
            {"topic": "user-events", "length": 12, "subscriptions": 2}
        ]

        await bus_monitor.bus_list_topics()

        out = capsys.readouterr().out
        assert "user-events" in out
        assert "Subscriptions" in out
        monitored.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_list_subscriptions(self, monitored, capsys):
        """Test subscriptions show their dead-letter policy."""
        monitored.list_subscriptions.return_value = [
            {
                "subscription": "notif-svc-user-events",
                "topic": "user-events",
                "ack_deadline": 30,
                "pending": 1,
                "dead_letter": "user-events-dlq",
                "max_attempts": 5,
                "active": False,
            }
        ]

        await bus_monitor.bus_list_subscriptions()

        out = capsys.readouterr().out
        assert "notif-svc-user-events" in out
        assert "user-events-dlq" in out

    @pytest.mark.asyncio
    async def test_inspect_empty_dlq(self, monitored, capsys):
        """Test an empty dead-letter topic is reported."""
        monitored.read_dlq.return_value = []

        await bus_monitor.bus_inspect_dlq("user-events")

        assert "No DLQ entries" in capsys.readouterr().out
        monitored.read_dlq.assert_awaited_once_with("user-events", limit=5)

    @pytest.mark.asyncio
    async def test_gateway_closed_on_error(self, monitored):
        """Test the gateway is closed even when the command fails."""
        monitored.read_topic.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await bus_monitor.bus_inspect_topic("user-events")

        monitored.close.assert_awaited_once()

    def test_main_dispatches(self, monkeypatch):
        """Test the argparse entry point runs the chosen command."""
        calls = []

        async def fake_inspect(topic, limit, redis_url):
            calls.append((topic, limit, redis_url))

        monkeypatch.setattr(bus_monitor, "bus_inspect_topic", fake_inspect)

        bus_monitor.main(["--redis-url", "redis://x:1/0", "inspect", "post-events", "--limit", "3"])

        assert calls == [("post-events", 3, "redis://x:1/0")]
