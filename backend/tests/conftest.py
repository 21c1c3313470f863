"""
Shared pytest fixtures for the cluster performance test suite.

Provides an in-memory database, a controllable clock, a fake quote provider,
and factories for clusters and cluster actions.
"""

import os
import sys
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from clusterperf.db.models import Base, ClusterAction, ClusterDefinition
from clusterperf.domain.clusters import DailyBar
from clusterperf.services.prices import PriceSource
from clusterperf.utils.cache import TTLCache
from clusterperf.utils.errors import PriceProviderError

FIXED_NOW = datetime(2025, 6, 30, 15, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock whose time only moves when told to. sleep() advances it."""

    def __init__(self, start: datetime = FIXED_NOW):
        self.current = start
        self._monotonic = 0.0
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def monotonic(self) -> float:
        return self._monotonic

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def advance(self, seconds: float = 0, days: int = 0) -> None:
        delta = timedelta(days=days, seconds=seconds)
        self.current += delta
        self._monotonic += delta.total_seconds()


class FakeQuoteProvider:
    """
    In-memory quote provider that records every call.

    ``prices`` maps symbol to current price, ``bars`` maps symbol to daily bars,
    ``failures`` maps symbol to the exception to raise for it.
    """

    name = "fake"

    def __init__(
        self,
        prices: Optional[Dict[str, float]] = None,
        bars: Optional[Dict[str, List[DailyBar]]] = None,
        failures: Optional[Dict[str, Exception]] = None,
        configured: bool = True,
    ):
        self.prices = dict(prices or {})
        self.bars = dict(bars or {})
        self.failures = dict(failures or {})
        self._configured = configured
        self.quote_calls: List[str] = []
        self.history_calls: List[tuple] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def fetch_quote(self, symbol: str) -> dict:
        self.quote_calls.append(symbol)
        if symbol in self.failures:
            raise self.failures[symbol]
        if symbol not in self.prices:
            raise PriceProviderError(f"No quote data for {symbol}")
        return {
            "price": self.prices[symbol],
            "previous_close": None,
            "change": None,
            "change_percent": None,
        }

    def fetch_daily_bars(self, symbol: str, start_date: date, end_date: date) -> List[DailyBar]:
        self.history_calls.append((symbol, start_date, end_date))
        if symbol in self.failures:
            raise self.failures[symbol]
        return [bar for bar in self.bars.get(symbol, []) if start_date <= bar.date <= end_date]


def make_bar(day: date, close: float) -> DailyBar:
    return DailyBar(date=day, open=close, high=close, low=close, close=close, volume=1000)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def provider():
    return FakeQuoteProvider()


@pytest.fixture
def price_source(provider, clock):
    return PriceSource(provider=provider, cache=TTLCache(ttl_seconds=300, clock=clock), clock=clock)


@pytest.fixture
def make_cluster(db_session: Session):
    """Factory creating committed cluster definitions."""

    def _make_cluster(is_active: bool = True, cluster_type: str = "company_insider", **kwargs) -> ClusterDefinition:
        cluster = ClusterDefinition(
            member_fingerprint=kwargs.pop("member_fingerprint", uuid.uuid4().hex),
            name=kwargs.pop("name", "Test cluster"),
            type=cluster_type,
            is_active=is_active,
            **kwargs,
        )
        db_session.add(cluster)
        db_session.commit()
        return cluster

    return _make_cluster


@pytest.fixture
def make_action(db_session: Session, clock):
    """Factory creating committed cluster actions dated relative to the fake clock."""

    def _make_action(
        cluster: ClusterDefinition,
        ticker: str = "ACME",
        direction: str = "buy",
        days_ago: int = 30,
        entry_price: Optional[float] = 100.0,
    ) -> ClusterAction:
        action = ClusterAction(
            cluster_id=cluster.id,
            ticker=ticker,
            company_name=f"{ticker} Corp",
            direction=direction,
            action_date=clock.today() - timedelta(days=days_ago),
            participant_count=3,
            total_value=250000.0,
            avg_entry_price=entry_price,
        )
        db_session.add(action)
        db_session.commit()
        return action

    return _make_action
