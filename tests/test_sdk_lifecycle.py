"""Tests for SDK construction, health and shutdown."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from shared_pubsub.errors import TransportFailure
from shared_pubsub.gateway import RedisStreamGateway, create_gateway
from shared_pubsub.schemas import ProvisioningPolicy
from shared_pubsub.sdk import PubSubSDK
from shared_pubsub.settings import Settings


class TestSettings:
    """Test suite for configuration."""

    @pytest.mark.parametrize(
        "environment,policy",
        [
            ("production", ProvisioningPolicy.REQUIRE_EXISTING),
            ("PROD", ProvisioningPolicy.REQUIRE_EXISTING),
            ("development", ProvisioningPolicy.AUTO_PROVISION),
            ("staging", ProvisioningPolicy.AUTO_PROVISION),
        ],
    )
    def test_policy_from_environment(self, environment, policy):
        """Test only production-like environments require existing resources."""
        assert Settings(environment=environment).provisioning_policy is policy

    def test_from_env(self, monkeypatch):
        """Test settings are read from environment variables."""
        monkeypatch.setenv("SERVICE_NAME", "notif-svc")
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("PUBSUB_MAX_MESSAGES", "25")
        monkeypatch.setenv("PUBSUB_RECLAIM_INTERVAL", "0.5")

        settings = Settings.from_env()

        assert settings.service_name == "notif-svc"
        assert settings.is_production
        assert settings.max_messages == 25
        assert settings.reclaim_interval == 0.5

    def test_create_gateway(self):
        """Test the default gateway is built from settings."""
        gateway = create_gateway(
            Settings(redis_url="redis://cache:6380/2", stream_maxlen=500, block_ms=100)
        )

        assert isinstance(gateway, RedisStreamGateway)
        assert gateway.redis_url == "redis://cache:6380/2"
        assert gateway.default_maxlen == 500
        assert gateway.block_ms == 100


class TestPubSubSDK:
    """Test suite for PubSubSDK wiring."""

    def test_policy_defaults_to_settings(self, gateway):
        """Test the SDK derives its policy from the environment."""
        sdk = PubSubSDK(gateway=gateway, settings=Settings(environment="production"))

        assert sdk.policy is ProvisioningPolicy.REQUIRE_EXISTING
        assert sdk.topics.policy is ProvisioningPolicy.REQUIRE_EXISTING
        assert sdk.subscriptions.policy is ProvisioningPolicy.REQUIRE_EXISTING

    def test_explicit_policy_wins(self, gateway):
        """Test an injected policy overrides the environment's."""
        sdk = PubSubSDK(
            gateway=gateway,
            settings=Settings(environment="production"),
            policy=ProvisioningPolicy.AUTO_PROVISION,
        )

        assert sdk.policy is ProvisioningPolicy.AUTO_PROVISION

    def test_registries_are_per_instance(self, gateway, settings):
        """Test two SDKs never share cached handles."""
        first = PubSubSDK(gateway=gateway, settings=settings)
        second = PubSubSDK(gateway=gateway, settings=settings)

        assert first.topics is not second.topics
        assert first.subscriptions is not second.subscriptions

    @pytest.mark.asyncio
    async def test_start_connects_once(self, gateway, settings):
        """Test start connects the gateway and is idempotent."""
        gateway.connect = AsyncMock()
        sdk = PubSubSDK(gateway=gateway, settings=settings)

        await sdk.start()
        await sdk.start()

        gateway.connect.assert_awaited_once()
        assert sdk.health()["is_running"] is True

    @pytest.mark.asyncio
    async def test_health(self, sdk):
        """Test health reports caches and subscriptions."""
        await sdk.publish("post-events", {"eventType": "post.created"})
        await sdk.subscribe("user-events", "feed-svc-user-events", AsyncMock())

        health = sdk.health()

        assert health["service"] == "test-service"
        assert health["policy"] == "auto_provision"
        assert health["gateway_type"] == "FakeBrokerGateway"
        assert "post-events" in health["cached_topics"]
        assert health["active_subscriptions"] == ["feed-svc-user-events"]
        assert health["deliveries"]["feed-svc-user-events"]["received"] == 0


class TestShutdown:
    """Test suite for draining the SDK."""

    @pytest.mark.asyncio
    async def test_shutdown_drains_everything(self, sdk, gateway):
        """Test every subscription is closed and every topic flushed."""
        await sdk.publish("post-events", {"eventType": "post.created"})
        await sdk.subscribe("user-events", "a-user-events", AsyncMock())
        await sdk.subscribe("media-events", "a-media-events", AsyncMock())

        await sdk.shutdown()

        assert sorted(gateway.closed) == ["a-media-events", "a-user-events"]
        assert set(gateway.flushed) >= {"post-events", "user-events", "media-events"}
        assert gateway.connected is False
        assert len(sdk.topics) == 0
        assert len(sdk.subscriptions) == 0
        assert sdk.get_active_subscriptions() == []
        assert sdk.health()["is_running"] is False

    @pytest.mark.asyncio
    async def test_shutdown_survives_individual_failures(self, sdk, gateway):
        """Test failing closes and flushes are logged, the rest still drain."""
        await sdk.publish("post-events", {"eventType": "post.created"})
        await sdk.publish("user-events", {"eventType": "user.created"})
        await sdk.subscribe("user-events", "a-user-events", AsyncMock())
        await sdk.subscribe("user-events", "b-user-events", AsyncMock())
        closed, flushed = [], []

        async def close_subscription(subscription):
            if subscription.name == "a-user-events":
                raise TransportFailure("close_subscription")
            closed.append(subscription.name)

        async def flush(topic):
            if topic.name == "post-events":
                raise TransportFailure("flush")
            flushed.append(topic.name)

        gateway.close_subscription = close_subscription
        gateway.flush = flush
        gateway.close = AsyncMock(side_effect=TransportFailure("close"))

        await sdk.shutdown()

        assert closed == ["b-user-events"]
        assert "user-events" in flushed
        gateway.close.assert_awaited()
        assert len(sdk.topics) == 0
        assert len(sdk.subscriptions) == 0

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_running_handlers(self, sdk, gateway):
        """Test shutdown returns only after in-flight handlers finish."""
        finished = []

        async def slow_handler(event, metadata):
            await asyncio.sleep(0.05)
            finished.append(event.event_type)

        await sdk.subscribe("user-events", "a-user-events", slow_handler)
        await sdk.publish("user-events", {"eventType": "user.created"})
        await asyncio.sleep(0)

        await sdk.shutdown()

        assert finished == ["user.created"]

    @pytest.mark.asyncio
    async def test_shutdown_with_nothing_open(self, gateway, settings):
        """Test shutting down an unused SDK is harmless."""
        sdk = PubSubSDK(gateway=gateway, settings=settings)

        await sdk.shutdown()

        assert gateway.flushed == []
        assert gateway.closed == []
