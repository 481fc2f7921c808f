"""
Store settings provider.

Reads checkout settings from the ``store_settings`` key-value table and
falls back to the configured defaults for missing or unparsable keys.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fabricstore.config import settings
from fabricstore.models.store_setting import StoreSetting

logger = logging.getLogger(__name__)


SHIPPING_FREE_THRESHOLD = "shippingFreeThreshold"
SHIPPING_BASE_RATE = "shippingBaseRate"
ORDER_MIN_AMOUNT = "orderMinAmount"
COD_ENABLED = "codEnabled"
ONLINE_PAYMENT_ENABLED = "onlinePaymentEnabled"


@dataclass(frozen=True)
class CheckoutSettings:
    """Settings the pricing engine needs for one order."""
    shipping_free_threshold: Decimal
    shipping_base_rate: Decimal
    order_min_amount: Decimal
    cod_enabled: bool
    online_payment_enabled: bool

    def is_payment_method_enabled(self, method: str) -> bool:
        if method == "cod":
            return self.cod_enabled
        if method == "online":
            return self.online_payment_enabled
        return False


def _parse_decimal(key: str, raw: Optional[str], default: Decimal) -> Decimal:
    if raw is None:
        return default
    try:
        value = Decimal(raw.strip())
    except (InvalidOperation, AttributeError):
        logger.warning(f"Store setting {key}={raw!r} is not a number, using default {default}")
        return default
    if not value.is_finite() or value < 0:
        logger.warning(f"Store setting {key}={raw!r} is out of range, using default {default}")
        return default
    return value


def _parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in ("true", "1", "yes", "on"):
        return True
    if normalized in ("false", "0", "no", "off"):
        return False
    return default


class StoreSettingsService:
    """Read-only access to store settings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_public_settings(self) -> Dict[str, str]:
        """All stored settings as raw key/value strings."""
        result = await self.db.execute(select(StoreSetting).order_by(StoreSetting.key))
        return {row.key: row.value for row in result.scalars().all()}

    async def get_checkout_settings(self) -> CheckoutSettings:
        """Typed checkout settings, read fresh on every call."""
        raw = await self.get_public_settings()
        return CheckoutSettings(
            shipping_free_threshold=_parse_decimal(
                SHIPPING_FREE_THRESHOLD, raw.get(SHIPPING_FREE_THRESHOLD),
                settings.DEFAULT_SHIPPING_FREE_THRESHOLD,
            ),
            shipping_base_rate=_parse_decimal(
                SHIPPING_BASE_RATE, raw.get(SHIPPING_BASE_RATE),
                settings.DEFAULT_SHIPPING_BASE_RATE,
            ),
            order_min_amount=_parse_decimal(
                ORDER_MIN_AMOUNT, raw.get(ORDER_MIN_AMOUNT),
                settings.DEFAULT_ORDER_MIN_AMOUNT,
            ),
            cod_enabled=_parse_bool(raw.get(COD_ENABLED), settings.DEFAULT_COD_ENABLED),
            online_payment_enabled=_parse_bool(
                raw.get(ONLINE_PAYMENT_ENABLED), settings.DEFAULT_ONLINE_PAYMENT_ENABLED
            ),
        )

    async def set_value(self, key: str, value: str) -> StoreSetting:
        """Upsert one setting. Used by the seed script and tests."""
        result = await self.db.execute(select(StoreSetting).where(StoreSetting.key == key))
        row = result.scalar_one_or_none()
        if row is None:
            row = StoreSetting(key=key, value=value)
            self.db.add(row)
        else:
            row.value = value
        await self.db.commit()
        return row
