"""
Tests for the cluster performance HTTP endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_db
from api.main import app
from clusterperf.db.models import ClusterPerformance


@pytest.fixture
def test_client(session_factory):
    """FastAPI test client bound to the in-memory test database."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestClusterPerformanceEndpoint:

    def test_returns_summary(self, test_client, db_session, clock, make_cluster, make_action):
        cluster = make_cluster(avg_return_30d=20.0, win_rate=1.0)
        action = make_action(cluster, ticker="ACME", days_ago=30)
        db_session.add(ClusterPerformance(
            cluster_action_id=action.id,
            days_since_action=30,
            current_price=120.0,
            price_change_pct=20.0,
            recorded_at=clock.now(),
        ))
        db_session.commit()

        response = test_client.get(f"/clusters/{cluster.id}/performance")

        assert response.status_code == 200
        body = response.json()
        assert body["cluster_id"] == cluster.id
        assert body["avg_return_30d"] == 20.0
        assert body["avg_return_90d"] is None
        assert body["win_rate"] == 1.0
        assert body["total_actions"] == 1
        assert body["recent_performance"] == [{
            "ticker": "ACME",
            "direction": "buy",
            "action_date": action.action_date.isoformat(),
            "current_return": 20.0,
        }]

    def test_unknown_cluster_is_404(self, test_client):
        response = test_client.get("/clusters/does-not-exist/performance")

        assert response.status_code == 404


class TestActionPerformanceEndpoint:

    def test_action_without_snapshot(self, test_client, make_cluster, make_action):
        action = make_action(make_cluster())

        response = test_client.get(f"/cluster-actions/{action.id}/performance")

        assert response.status_code == 200
        assert response.json() == {
            "cluster_action_id": action.id,
            "current_price": None,
            "price_change_pct": None,
            "days_since_action": None,
        }

    def test_unknown_action_is_404(self, test_client):
        response = test_client.get("/cluster-actions/does-not-exist/performance")

        assert response.status_code == 404


def test_health(test_client):
    assert test_client.get("/health").json() == {"status": "ok"}


def test_cluster_response_schema_carries_example():
    from api.schemas.performance import ClusterPerformanceResponse

    schema = ClusterPerformanceResponse.model_json_schema()

    assert schema["example"]["total_actions"] == 14
