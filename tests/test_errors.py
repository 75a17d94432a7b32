"""Tests for error handling and connection configuration."""

import pytest

from dfdb_client import (
    ConfigurationError,
    Connection,
    DfdbError,
    Failure,
    RequestError,
)
from dfdb_client._errors import error_from_outcome


class TestDfdbError:
    """Tests for DfdbError."""

    def test_basic_error(self) -> None:
        error = DfdbError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.status is None
        assert error.code is None

    def test_error_with_status_and_code(self) -> None:
        error = DfdbError("Not found", status=404, code="HTTP_ERROR")
        assert "(status=404)" in str(error)
        assert "[HTTP_ERROR]" in str(error)

    def test_repr(self) -> None:
        assert repr(DfdbError("x", status=1)) == (
            "DfdbError(message='x', status=1, code=None)"
        )


class TestRequestError:
    """Tests for RequestError and error_from_outcome."""

    def test_wraps_http_failure(self) -> None:
        outcome = Failure(status=400, body={"error": "bad query"}, error="HTTP 400")
        error = error_from_outcome("Query", outcome)

        assert isinstance(error, RequestError)
        assert isinstance(error, DfdbError)
        assert error.message == "Query failed: HTTP 400"
        assert error.status == 400
        assert error.code == "HTTP_ERROR"
        assert error.details == {"error": "bad query"}
        assert error.outcome is outcome
        assert error.operation == "Query"

    def test_wraps_network_failure(self) -> None:
        outcome = Failure(status=0, body=None, error="connection refused")
        error = error_from_outcome("Health check", outcome)

        assert error.status is None
        assert error.code == "NETWORK_ERROR"
        assert str(error) == "Health check failed: connection refused [NETWORK_ERROR]"


class TestConnectionConfig:
    """Tests for Connection validation."""

    def test_defaults(self) -> None:
        conn = Connection("http://localhost:8080")
        assert conn.timeout == 30.0
        assert conn.max_retries == 3
        assert conn.backoff_base == 1.0
        assert conn.headers is None

    def test_strips_trailing_slash(self) -> None:
        assert Connection("http://localhost:8080/").base_url == "http://localhost:8080"

    @pytest.mark.parametrize("base_url", ["", None])
    def test_base_url_required(self, base_url) -> None:
        with pytest.raises(ConfigurationError, match="base_url is required"):
            Connection(base_url)

    def test_configuration_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            Connection("")

    @pytest.mark.parametrize(
        "kwargs",
        [{"timeout": 0}, {"timeout": -1.0}, {"max_retries": -1}, {"backoff_base": -0.5}],
    )
    def test_invalid_settings(self, kwargs) -> None:
        with pytest.raises(ConfigurationError):
            Connection("http://localhost:8080", **kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"timeout": None},
            {"timeout": "30"},
            {"max_retries": None},
            {"max_retries": 2.5},
            {"max_retries": True},
            {"backoff_base": None},
            {"backoff_base": "1"},
        ],
    )
    def test_wrong_types_raise_configuration_error(self, kwargs) -> None:
        with pytest.raises(ConfigurationError):
            Connection("http://localhost:8080", **kwargs)

    def test_immutable(self) -> None:
        conn = Connection("http://localhost:8080")
        with pytest.raises(AttributeError):
            conn.max_retries = 10  # type: ignore[misc]
