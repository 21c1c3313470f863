"""
Price lookups for performance tracking.

PriceSource wraps a quote provider with a short-lived quote cache and optional
request pacing, and turns every provider failure into "no price". Historical
series are never cached.
"""

import math
from datetime import date, timedelta
from typing import List, Optional, Sequence

from clusterperf.config import settings
from clusterperf.domain.clusters import DailyBar, PerformanceMetrics, PriceQuote
from clusterperf.log_config import logger
from clusterperf.services.providers import build_provider
from clusterperf.utils.cache import TTLCache
from clusterperf.utils.clock import system_clock
from clusterperf.utils.errors import (
    MissingSecretError,
    PriceProviderError,
    ProviderNoticeError,
)

# Half-width of the window requested around a target date
PRICE_AT_DATE_WINDOW_DAYS = 7

TRAILING_HORIZONS = (7, 30, 90)


def resolve_price_at_date(bars: Sequence[DailyBar], target_date: date) -> Optional[float]:
    """
    Close of the bar closest to target_date.

    An exact date match wins. Otherwise the bar with the smallest absolute day
    distance is used, the earlier bar winning a tie. Empty input gives None.
    """
    best = None
    best_key = None
    for bar in bars:
        distance = abs((bar.date - target_date).days)
        if distance == 0:
            return bar.close
        key = (distance, bar.date)
        if best_key is None or key < best_key:
            best, best_key = bar, key
    return best.close if best is not None else None


def calculate_return(entry_price: float, current_price: float) -> float:
    """Percentage change from entry_price to current_price; 0 when entry is 0."""
    if entry_price == 0:
        return 0.0
    return (current_price - entry_price) / entry_price * 100


class PriceSource:
    """Current and historical prices for tickers, backed by a quote provider."""

    def __init__(self, provider=None, cache: Optional[TTLCache] = None, rate_limiter=None, clock=None):
        """
        Args:
            provider: Quote provider client (defaults to settings.price_provider)
            cache: Quote cache (defaults to a settings-sized TTL cache)
            rate_limiter: Optional RateLimiter; one token is taken per provider request
            clock: Clock for quote timestamps and "today"
        """
        self.clock = clock or system_clock
        self.provider = provider if provider is not None else build_provider()
        if cache is None:
            cache = TTLCache(
                ttl_seconds=settings.price_cache_ttl_seconds,
                max_entries=settings.price_cache_max_entries,
                clock=self.clock,
            )
        self.cache = cache
        self.rate_limiter = rate_limiter

    def _pace(self) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.acquire()

    def get_current_price(self, ticker: str) -> Optional[PriceQuote]:
        """
        Current quote for a ticker, served from cache while fresh.

        Returns None when the provider is unconfigured, reports an error or
        throttling notice, fails, or returns an unusable payload.
        """
        symbol = ticker.strip().upper()

        cached = self.cache.get(symbol)
        if cached is not None:
            return cached

        if not self.provider.configured:
            logger.warning(f"Quote provider '{self.provider.name}' is not configured, no price for {symbol}")
            return None

        self._pace()
        try:
            data = self.provider.fetch_quote(symbol)
        except MissingSecretError as e:
            logger.warning(f"No price for {symbol}: {e.message}")
            return None
        except ProviderNoticeError as e:
            logger.error(f"Quote provider notice for {symbol}: {e.message}")
            return None
        except PriceProviderError as e:
            logger.error(f"Failed to fetch quote for {symbol}: {e.message}")
            return None

        price = data.get("price")
        if price is None or not math.isfinite(price) or price <= 0:
            logger.error(f"Unusable price {price!r} for {symbol}, not caching")
            return None

        now = self.clock.now()
        quote = PriceQuote(
            symbol=symbol,
            timestamp=now,
            expires_at=now + timedelta(seconds=self.cache.ttl_seconds),
            **data,
        )
        self.cache.set(symbol, quote)
        logger.debug(f"Fetched quote for {symbol}: {quote.price}")
        return quote

    def get_historical_prices(
        self, ticker: str, start_date: date, end_date: Optional[date] = None
    ) -> List[DailyBar]:
        """Daily bars in [start_date, end_date] ascending by date; empty when unavailable."""
        symbol = ticker.strip().upper()
        end_date = end_date or self.clock.today()
        if start_date > end_date:
            return []

        if not self.provider.configured:
            logger.warning(f"Quote provider '{self.provider.name}' is not configured, no history for {symbol}")
            return []

        self._pace()
        try:
            bars = self.provider.fetch_daily_bars(symbol, start_date, end_date)
        except MissingSecretError as e:
            logger.warning(f"No history for {symbol}: {e.message}")
            return []
        except PriceProviderError as e:
            logger.error(f"Failed to fetch history for {symbol}: {e.message}")
            return []

        return sorted(
            (bar for bar in bars if start_date <= bar.date <= end_date),
            key=lambda bar: bar.date,
        )

    def get_price_at_date(self, ticker: str, target_date: date) -> Optional[float]:
        """Close on target_date, or on the nearest trading day within a week of it."""
        window = timedelta(days=PRICE_AT_DATE_WINDOW_DAYS)
        bars = self.get_historical_prices(ticker, target_date - window, target_date + window)
        return resolve_price_at_date(bars, target_date)

    def calculate_performance_metrics(
        self, ticker: str, entry_date: date, entry_price: Optional[float] = None
    ) -> Optional[PerformanceMetrics]:
        """
        Entry-relative and trailing 7/30/90-day returns for a ticker.

        A missing entry price is backfilled from the close nearest entry_date.
        Returns None when no entry price or no current price is available.
        """
        today = self.clock.today()
        window = timedelta(days=PRICE_AT_DATE_WINDOW_DAYS)
        start = today - timedelta(days=max(TRAILING_HORIZONS))
        if not entry_price:
            start = min(start, entry_date)

        # One history request covers the entry date and every trailing horizon
        bars = self.get_historical_prices(ticker, start - window, today)

        def close_near(target: date) -> Optional[float]:
            nearby = [bar for bar in bars if abs((bar.date - target).days) <= PRICE_AT_DATE_WINDOW_DAYS]
            return resolve_price_at_date(nearby, target)

        entry = entry_price or close_near(entry_date)
        if not entry:
            logger.debug(f"No entry price for {ticker} on {entry_date}")
            return None

        quote = self.get_current_price(ticker)
        if quote is None:
            return None
        current = quote.price

        trailing = {}
        for days in TRAILING_HORIZONS:
            past = close_near(today - timedelta(days=days))
            trailing[days] = calculate_return(past, current) if past else None

        return PerformanceMetrics(
            entry_price=entry,
            current_price=current,
            return_7d=trailing[7],
            return_30d=trailing[30],
            return_90d=trailing[90],
            return_total=calculate_return(entry, current),
        )
