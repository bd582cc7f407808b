"""Tests for error handling and response envelopes.

Verifies:
- Error envelope shape is correct
- Every error code maps to an HTTP status
- Unknown exceptions return E_INTERNAL with 500
- Malformed JSON and schema failures return E_INVALID_REQUEST
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tests.helpers import auth_headers, create_test_user_id
from tutorlink.errors import (
    ERROR_CODE_TO_STATUS,
    ApiError,
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotAuthenticatedError,
    NotFoundError,
)
from tutorlink.responses import error_response, success_response, unhandled_exception_handler


class TestEnvelopes:
    """Tests for success and error envelope format."""

    def test_error_response_has_correct_shape(self):
        response = error_response(ApiErrorCode.E_TICKET_NOT_FOUND, "Ticket not found")

        assert response["error"]["code"] == "E_TICKET_NOT_FOUND"
        assert response["error"]["message"] == "Ticket not found"

    def test_error_response_includes_explicit_request_id(self):
        response = error_response(ApiErrorCode.E_FORBIDDEN, "Denied", request_id="req-1")

        assert response["error"]["request_id"] == "req-1"

    def test_success_response_wraps_data(self):
        assert success_response([1, 2]) == {"data": [1, 2]}
        assert success_response(None) == {"data": None}


class TestErrorCodeToStatus:
    """Every error code maps to exactly one HTTP status."""

    def test_all_error_codes_have_status_mapping(self):
        for code in ApiErrorCode:
            assert code in ERROR_CODE_TO_STATUS, f"{code} has no status mapping"

    @pytest.mark.parametrize(
        "code,expected_status",
        [
            (ApiErrorCode.E_UNAUTHENTICATED, 401),
            (ApiErrorCode.E_NOT_TICKET_OWNER, 403),
            (ApiErrorCode.E_ROOM_PRIVATE, 403),
            (ApiErrorCode.E_ROOM_NOT_FOUND, 404),
            (ApiErrorCode.E_INVALID_ROLE, 400),
            (ApiErrorCode.E_INVALID_TIME_RANGE, 400),
            (ApiErrorCode.E_INVALID_TRANSITION, 409),
            (ApiErrorCode.E_INVITE_ALREADY_EXISTS, 409),
            (ApiErrorCode.E_AUTH_UNAVAILABLE, 503),
            (ApiErrorCode.E_SIGN_UPLOAD_FAILED, 500),
        ],
    )
    def test_error_code_maps_to_correct_status(self, code: ApiErrorCode, expected_status: int):
        assert ApiError(code, "x").status_code == expected_status


class TestApiErrorClasses:
    def test_defaults(self):
        assert NotAuthenticatedError().code == ApiErrorCode.E_UNAUTHENTICATED
        assert NotFoundError().status_code == 404
        assert ForbiddenError().status_code == 403
        assert InvalidRequestError().status_code == 400
        assert ConflictError().status_code == 409

    def test_specific_code_keeps_category_status(self):
        error = ConflictError(ApiErrorCode.E_USERNAME_TAKEN, "Username is already taken")

        assert error.status_code == 409
        assert str(error) == "Username is already taken"


class TestMalformedJsonHandling:
    def test_malformed_json_returns_400(self, client: TestClient):
        response = client.post(
            "/health",
            content="{invalid json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_schema_violation_returns_400_not_422(self, auth_client: TestClient):
        """Request validation failures use the standard envelope and status."""
        response = auth_client.post(
            "/tickets",
            json={"subject": "Astrology", "topic": "x", "description": "y"},
            headers=auth_headers(create_test_user_id()),
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "E_INVALID_REQUEST"
        assert "subject" in error["message"]


class TestUnhandledExceptionHandling:
    def test_unhandled_exception_returns_500_without_details(self):
        test_app = FastAPI()

        @test_app.get("/crash")
        def crash_endpoint():
            raise RuntimeError("SECRET_INTERNAL_DETAIL")

        test_app.add_exception_handler(Exception, unhandled_exception_handler)

        client = TestClient(test_app, raise_server_exceptions=False)
        response = client.get("/crash")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "E_INTERNAL"
        assert "SECRET_INTERNAL_DETAIL" not in response.text
