# tests/test_health.py
from http import HTTPStatus


def test_health_endpoint_ok(client):
    """
    /health responds with 200 and reports the running engine without
    touching any provider.
    """
    response = client.get("/health")

    assert response.status_code == HTTPStatus.OK
    data = response.json()

    assert data["status"] == "ok"
    assert isinstance(data["app_name"], str)
    assert isinstance(data["environment"], str)
    assert data["engine_running"] is True
    assert data["last_cycle"] == 0
    assert "timestamp_utc" in data
