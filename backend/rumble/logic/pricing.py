"""Tip amount validation against a reference price.

A battle is funded by a small tip worth a fixed fiat amount. The accepted
window is computed from the current reference price of the tip token, with a
fixed tolerance band around the target. When no price is available the range
cannot be computed and funding is rejected.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Self

import structlog
from pydantic import BaseModel, model_validator

from rumble.logic.exceptions import PriceUnavailableError
from rumble.logic.models import TokenAmount

logger = structlog.get_logger()


class TipRange(BaseModel, frozen=True):
    """Inclusive bounds for an acceptable tip, in the token's smallest unit."""

    min: TokenAmount
    max: TokenAmount
    target: TokenAmount

    @model_validator(mode="after")
    def _validate_order(self) -> Self:
        if not self.min <= self.target <= self.max:
            raise ValueError(f"tip range out of order: {self.min} <= {self.target} <= {self.max}")
        return self

    def accepts(self, amount: int) -> bool:
        return self.min <= amount <= self.max


def tip_amount_range(
    price_usd: float | Decimal | str,
    target_usd: float | Decimal | str = 1,
    tolerance_percent: int = 10,
    decimals: int = 18,
) -> TipRange:
    """Compute the tip window for a fiat target at the given token price."""
    try:
        price = Decimal(str(price_usd))
    except InvalidOperation:
        raise PriceUnavailableError(f"invalid reference price {price_usd!r}") from None
    if not price.is_finite() or price <= 0:
        raise PriceUnavailableError(f"invalid reference price {price_usd!r}")

    scaled = Decimal(str(target_usd)) / price * (Decimal(10) ** decimals)
    target = int(scaled.to_integral_value(rounding=ROUND_FLOOR))
    return TipRange(
        min=target * (100 - tolerance_percent) // 100,
        max=target * (100 + tolerance_percent) // 100,
        target=target,
    )


class PriceSource(ABC):
    """One upstream that can quote the tip token in USD."""

    name: str = "source"

    @abstractmethod
    async def fetch_price_usd(self) -> Decimal:
        """Return a positive USD price, or raise on any failure."""


class PriceOracle(ABC):
    """Supplies the accepted tip window. Raises PriceUnavailableError when it cannot."""

    @abstractmethod
    async def get_tip_amount_range(self) -> TipRange: ...


class FallbackPriceOracle(PriceOracle):
    """Tries each price source in order and uses the first usable quote.

    No cached or stored price is ever used: if every source
    fails, the oracle raises and funding is rejected.
    """

    def __init__(
        self,
        sources: Sequence[PriceSource],
        target_usd: float | Decimal = 1,
        tolerance_percent: int = 10,
        decimals: int = 18,
    ) -> None:
        self._sources = list(sources)
        self._target_usd = target_usd
        self._tolerance_percent = tolerance_percent
        self._decimals = decimals

    async def get_tip_amount_range(self) -> TipRange:
        for source in self._sources:
            try:
                price = await source.fetch_price_usd()
                tip_range = tip_amount_range(price, self._target_usd, self._tolerance_percent, self._decimals)
            except Exception:
                logger.warning("price source failed", source=source.name, exc_info=True)
                continue
            logger.debug("price fetched", source=source.name, price_usd=str(price))
            return tip_range
        raise PriceUnavailableError("all price sources failed")
