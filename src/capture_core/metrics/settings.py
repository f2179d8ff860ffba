"""Capture configuration (guest-count SKUs, wedding-lead tag) stored in Redis.

Reads degrade to the built-in defaults when Redis is unavailable or the keys
are empty, so a configuration outage never blocks a metrics run.
"""
import logging
from typing import Optional

from pydantic import BaseModel, Field
from redis.asyncio import Redis
from redis.exceptions import RedisError

from .name_matching import DEFAULT_THRESHOLD


logger = logging.getLogger(__name__)


DEFAULT_GUEST_COUNT_SKU = "7a5d9556-33e4-4d97-a3e8-37adefc6dcf0"
DEFAULT_WEDDING_LEAD_TAG_ID = "7c3b92b9-e048-4f5d-b156-e2d52c2779a6"

GUEST_SKUS_KEY = "capture:config:guest_count_skus"
WEDDING_TAG_KEY = "capture:config:wedding_lead_tag_id"


class CaptureSettings(BaseModel):
    """Configuration read once per metrics computation."""

    guest_count_skus: list[str] = Field(
        default_factory=lambda: [DEFAULT_GUEST_COUNT_SKU]
    )
    wedding_lead_tag_id: str = DEFAULT_WEDDING_LEAD_TAG_ID
    match_threshold: float = DEFAULT_THRESHOLD


def _decode(value: object) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


class CaptureSettingsStore:
    """Reads and writes capture configuration in Redis."""

    def __init__(
        self,
        redis: Optional[Redis],
        match_threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        self.redis = redis
        self.match_threshold = match_threshold

    async def load(self) -> CaptureSettings:
        """Load settings, falling back to defaults on any Redis failure."""
        defaults = CaptureSettings(match_threshold=self.match_threshold)
        if self.redis is None:
            return defaults

        try:
            raw_skus = await self.redis.smembers(GUEST_SKUS_KEY)
            raw_tag = await self.redis.get(WEDDING_TAG_KEY)
            skus = sorted(_decode(sku).strip() for sku in raw_skus or ())
            tag = _decode(raw_tag).strip() if raw_tag else ""
        except (RedisError, OSError, UnicodeDecodeError) as exc:
            logger.warning("Capture settings unavailable, using defaults: %s", exc)
            return defaults

        skus = [sku for sku in skus if sku]
        if not skus:
            logger.warning(
                "No guest count SKUs configured, using default %s",
                DEFAULT_GUEST_COUNT_SKU,
            )
            skus = defaults.guest_count_skus

        return CaptureSettings(
            guest_count_skus=skus,
            wedding_lead_tag_id=tag or defaults.wedding_lead_tag_id,
            match_threshold=self.match_threshold,
        )

    async def add_guest_sku(self, sku_id: str) -> None:
        await self._require_redis().sadd(GUEST_SKUS_KEY, sku_id)
        logger.info("Added guest count SKU %s", sku_id)

    async def remove_guest_sku(self, sku_id: str) -> None:
        await self._require_redis().srem(GUEST_SKUS_KEY, sku_id)
        logger.info("Removed guest count SKU %s", sku_id)

    async def set_wedding_tag(self, tag_id: str) -> None:
        await self._require_redis().set(WEDDING_TAG_KEY, tag_id)
        logger.info("Set wedding lead tag %s", tag_id)

    def _require_redis(self) -> Redis:
        if self.redis is None:
            raise RuntimeError("Redis is not configured for capture settings")
        return self.redis
