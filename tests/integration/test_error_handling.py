"""
Tests for error handling across the application.

Tests graceful handling of:
- Invalid IDs and 404 responses
- Malformed requests
- Unreachable database
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from unittest.mock import patch

from app.services.errors import ServiceUnavailableError

pytestmark = pytest.mark.integration


class TestInvalidIdHandling:
    """Tests for handling invalid/non-existent IDs."""

    def test_ingredient_not_found(self, client: TestClient):
        response = client.get("/ingredients/99999")
        assert response.status_code == 404
        assert "not found" in response.json()["detail"]

    def test_product_not_found(self, client: TestClient):
        assert client.get("/products/99999").status_code == 404

    def test_recompute_not_found(self, client: TestClient):
        assert client.post("/products/99999/recompute").status_code == 404

    def test_invalid_id_format(self, client: TestClient):
        response = client.get("/products/invalid")
        assert response.status_code == 422  # Validation error

    def test_negative_cascade_offset(self, client: TestClient):
        response = client.post("/ingredients/1/cascade", params={"offset": -5})
        assert response.status_code == 422


class TestMalformedRequests:
    def test_product_missing_brand(self, client: TestClient):
        response = client.post("/products", json={"name": "No Brand"})
        assert response.status_code == 422

    def test_product_blank_brand(self, client: TestClient):
        response = client.post("/products", json={"name": "Blank", "brand": "  "})
        assert response.status_code == 400


class TestUnavailableCollaborators:
    def test_database_down_is_503(self, client: TestClient):
        error = OperationalError("SELECT 1", {}, Exception("connection refused"))
        with patch("app.api.votes.VoteService.get_status", side_effect=error):
            response = client.get("/votes/status", params={"barcode": "123"})

        assert response.status_code == 503
        assert response.json()["detail"] == "Database unavailable"

    def test_service_unavailable_is_503(self, client: TestClient):
        with patch("app.api.votes.VoteService.leaderboard", side_effect=ServiceUnavailableError("down")):
            response = client.get("/votes/leaderboard")

        assert response.status_code == 503


class TestHealth:
    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
