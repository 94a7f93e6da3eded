"""
Tests for health check and configuration endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from main import app
from lanerush.core.synchronizer import reset_synchronizer


@pytest.fixture
def client():
    """Create FastAPI test client with a fresh race."""
    reset_synchronizer()
    with TestClient(app) as test_client:
        yield test_client


def test_root_endpoint(client):
    """Test the root endpoint returns welcome message."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "LaneRush" in data["message"]
    assert "version" in data
    assert data["docs"] == "/docs"
    assert data["health"] == "/health"
    assert data["websocket"] == "/ws"


def test_health_check(client):
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert data["app_name"] == "LaneRush"
    assert "version" in data
    assert data["timestamp"].endswith("Z")
    assert data["race"] == {
        "phase": "waiting",
        "participants": 0,
        "connections": 0,
        "tick_loop": False,
    }


def test_readiness_check(client):
    """Test the readiness check endpoint."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["ready"] is True
    assert data["checks"]["race"] == "ok"


def test_health_endpoints_cors(client):
    """Test that CORS headers are properly set."""
    response = client.options(
        "/health",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "GET",
        }
    )
    assert response.status_code == 200
    assert "access-control-allow-origin" in response.headers


def test_race_config(client):
    """Test the race configuration endpoint."""
    response = client.get("/config/race")
    assert response.status_code == 200
    data = response.json()
    assert data["MAX_PLAYERS"] == 16
    assert data["MIN_PLAYERS_TO_START"] == 2
    assert data["RACE_DISTANCE"] == 100
    assert data["IMPEDE_DURATION_MS"] == 500
    assert data["MAX_IMPEDES_PER_RACE"] == 3
    assert data["TICK_RATE_MS"] == 50
