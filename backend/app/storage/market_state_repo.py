"""Market price feed repository (read-only)."""

import logging
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation

import orjson
from sqlalchemy import select

from app.storage import cache
from app.storage.database import MarketStateTable, get_database

logger = logging.getLogger(__name__)


class MarketStateRepository:
    """Latest prices from the Redis price cache, then ``centralized_market_state``.

    Implements ``core.store_protocol.PriceFeed``.
    """

    async def get_latest_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Get the latest known price for each symbol.

        Symbols with no cached or stored price are left out of the result.
        """
        wanted = sorted(set(symbols))
        if not wanted:
            return {}

        prices = await self._get_cached_prices(wanted)

        misses = [s for s in wanted if s not in prices]
        if misses:
            prices.update(await self._get_stored_prices(misses))

        return prices

    async def _get_cached_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        if not cache.is_cache_available():
            return {}

        raw_values = await cache.mget([cache.price_key(s) for s in symbols])

        prices = {}
        for symbol, raw in zip(symbols, raw_values):
            if raw is None:
                continue
            try:
                data = orjson.loads(raw)
                prices[symbol] = Decimal(str(data["price"]))
            except (orjson.JSONDecodeError, KeyError, TypeError, InvalidOperation) as e:
                logger.warning(f"Ignoring bad cached price for {symbol}: {e}")
        return prices

    async def _get_stored_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        async with get_database().session() as session:
            stmt = select(
                MarketStateTable.symbol,
                MarketStateTable.current_price,
            ).where(MarketStateTable.symbol.in_(symbols))
            result = await session.execute(stmt)

            return {
                row.symbol: Decimal(str(row.current_price))
                for row in result.all()
                if row.current_price is not None
            }
