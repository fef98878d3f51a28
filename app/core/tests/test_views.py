"""
Tests for the health check endpoint.
"""

from unittest.mock import patch

import pytest
from django.db import OperationalError
from django.urls import reverse


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, client):
        with patch("core.views.cache") as cache:
            cache.get.return_value = "ok"
            response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected", "cache": "connected"}

    def test_cache_outage_degrades_without_failing(self, client):
        with patch("core.views.cache") as cache:
            cache.set.side_effect = ConnectionError("redis down")
            response = client.get(reverse("health_check"))

        assert response.status_code == 200
        assert response.json()["cache"] == "disconnected"

    def test_database_outage(self, client):
        with patch("core.views.connection") as connection, patch("core.views.cache") as cache:
            connection.cursor.side_effect = OperationalError("could not connect")
            cache.get.return_value = "ok"
            response = client.get(reverse("health_check"))

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
        assert response.json()["database"] == "disconnected"
