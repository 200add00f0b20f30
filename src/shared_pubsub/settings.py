import logging
from typing import Optional

from decouple import config
from pydantic import BaseModel

from shared_pubsub.schemas import ProvisioningPolicy

PRODUCTION_ENVIRONMENTS = ("production", "prod")


class Settings(BaseModel):
    """
    Process-wide configuration consumed by the engine.

    Values come from the environment (or a `.env` file) through decouple;
    nothing below reads `os.environ` directly.
    """

    service_name: str = "unknown"
    environment: str = "development"
    redis_url: str = "redis://localhost:6379/0"
    max_messages: int = 10
    stream_maxlen: int = 10_000
    reclaim_interval: float = 5.0
    block_ms: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            service_name=config("SERVICE_NAME", default="unknown"),
            environment=config("ENVIRONMENT", default="development"),
            redis_url=config("REDIS_URL", default="redis://localhost:6379/0"),
            max_messages=config("PUBSUB_MAX_MESSAGES", default=10, cast=int),
            stream_maxlen=config("PUBSUB_STREAM_MAXLEN", default=10_000, cast=int),
            reclaim_interval=config(
                "PUBSUB_RECLAIM_INTERVAL", default=5.0, cast=float
            ),
            block_ms=config("PUBSUB_BLOCK_MS", default=5000, cast=int),
            log_level=config("LOG_LEVEL", default="INFO"),
        )

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in PRODUCTION_ENVIRONMENTS

    @property
    def provisioning_policy(self) -> ProvisioningPolicy:
        """Production topics and subscriptions are provisioned out-of-band."""
        if self.is_production:
            return ProvisioningPolicy.REQUIRE_EXISTING
        return ProvisioningPolicy.AUTO_PROVISION


def configure_logging(level: Optional[str] = None) -> None:
    level = level or config("LOG_LEVEL", default="INFO")
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
