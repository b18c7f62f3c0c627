"""
Integration tests for OpenAPI documentation.

Verifies OpenAPI schema is correctly generated for all endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from trustnet.api.main import app

TRANSFER_ENDPOINTS = [
    ("/v1/transfers", "post"),
    ("/v1/transfers/active", "get"),
    ("/v1/transfers/{transaction_id}", "get"),
    ("/v1/transfers/{transaction_id}", "patch"),
    ("/v1/transfers/{transaction_id}/matches", "get"),
    ("/v1/transfers/{transaction_id}/match-requests", "post"),
    ("/v1/transfers/{transaction_id}/match-requests/confirm", "post"),
    ("/v1/transfers/{transaction_id}/proofs", "post"),
    ("/v1/transfers/{transaction_id}/complete", "post"),
    ("/v1/transfers/{transaction_id}/cancel", "post"),
    ("/v1/transfers/{transaction_id}/reports", "post"),
    ("/v1/operator/transfers/{transaction_id}/reports/{report_index}/resolve", "post"),
    ("/v1/transfers/{transaction_id}/messages", "post"),
    ("/v1/transfers/{transaction_id}/messages", "get"),
    ("/v1/transfers/{transaction_id}/messages/read", "post"),
]


@pytest.fixture
def client() -> TestClient:
    """Create test client for the application."""
    return TestClient(app)


@pytest.fixture
def schema(client: TestClient) -> dict:
    response = client.get("/openapi.json")
    assert response.status_code == 200
    return response.json()


class TestOpenAPISchema:
    """Tests for OpenAPI schema generation."""

    def test_openapi_schema_accessible(self, schema: dict) -> None:
        """OpenAPI schema is accessible at /openapi.json."""
        assert "openapi" in schema
        assert "info" in schema
        assert "paths" in schema

    def test_openapi_title_and_description(self, schema: dict) -> None:
        assert schema["info"]["title"] == "trustnet"
        assert "trust network" in schema["info"]["description"]
        assert schema["info"]["version"] == "0.1.0"

    @pytest.mark.parametrize(("path", "method"), TRANSFER_ENDPOINTS)
    def test_transfer_endpoint_documented(self, schema: dict, path: str, method: str) -> None:
        assert path in schema["paths"]
        operation = schema["paths"][path][method]
        assert operation["summary"]
        assert "v1" in operation.get("tags", [])

    def test_create_request_schema(self, schema: dict) -> None:
        """CreateTransferRequest exposes amount, currencies, rate and notes."""
        components = schema["components"]["schemas"]
        assert "CreateTransferRequest" in components
        props = components["CreateTransferRequest"]["properties"]
        assert {"amount", "currency", "target_currency", "rate", "notes"} <= set(props)

    def test_transaction_response_schema(self, schema: dict) -> None:
        components = schema["components"]["schemas"]
        assert "TransactionResponse" in components
        props = components["TransactionResponse"]["properties"]
        assert {"transaction_id", "initiator", "recipient", "status", "proofs"} <= set(props)

    def test_error_response_schema(self, schema: dict) -> None:
        """Error bodies carry the outcome reason and the record's current status."""
        components = schema["components"]["schemas"]
        props = components["ErrorDetail"]["properties"]
        assert {"reason", "message", "current_status"} <= set(props)

    def test_acting_user_header_documented(self, schema: dict) -> None:
        operation = schema["paths"]["/v1/transfers"]["post"]
        headers = [p["name"] for p in operation["parameters"] if p["in"] == "header"]
        assert headers == ["x-user-id"]

    def test_operator_header_documented(self, schema: dict) -> None:
        path = "/v1/operator/transfers/{transaction_id}/reports/{report_index}/resolve"
        operation = schema["paths"][path]["post"]
        headers = [p["name"] for p in operation["parameters"] if p["in"] == "header"]
        assert headers == ["x-operator-token"]
        assert "401" in operation["responses"]

    def test_v1_tag_in_schema(self, schema: dict) -> None:
        """v1 tag is defined in OpenAPI schema."""
        tag_names = [t["name"] for t in schema.get("tags", [])]
        assert "v1" in tag_names

    def test_health_endpoint_in_schema(self, schema: dict) -> None:
        assert "get" in schema["paths"]["/health"]


class TestSwaggerUI:
    """Tests for Swagger UI availability."""

    def test_docs_endpoint_accessible(self, client: TestClient) -> None:
        """Swagger UI is accessible at /docs."""
        response = client.get("/docs")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "swagger" in response.text.lower()

    def test_redoc_endpoint_accessible(self, client: TestClient) -> None:
        """ReDoc is accessible at /redoc."""
        response = client.get("/redoc")
        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]
        assert "redoc" in response.text.lower()
