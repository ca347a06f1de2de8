"""
Tests for the health check endpoint.
"""

from django.db import DatabaseError
from django.urls import reverse


class TestHealthCheck:
    def test_healthy(self, client, db):
        response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
            "gateway": "configured",
        }

    def test_database_down(self, client, db, mocker):
        mock_connection = mocker.patch("core.views.connection")
        mock_connection.cursor.side_effect = DatabaseError("down")

        response = client.get(reverse("health_check"))

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"

    def test_missing_gateway_secret(self, client, db, settings):
        settings.FLUTTERWAVE_SECRET_KEY = ""

        response = client.get(reverse("health_check"))

        assert response.json()["gateway"] == "missing"
