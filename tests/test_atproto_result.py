"""
Unit tests for the HttpResult envelope.

Tests cover the success predicate, the no-content case, payload mapping, and the
error taxonomy raised by ensure_success().
"""

import pytest

from social.graze.atsession.atproto.errors import (
    AuthenticationError,
    ErrorCode,
    FormatError,
    HttpResultError,
    ResolutionError,
    SessionExpiredError,
    TransientNetworkError,
)
from social.graze.atsession.atproto.result import (
    AtErrorDetail,
    HttpResult,
    exception_for,
    failure,
    network_failure,
    no_content,
    success,
)


class TestSucceeded:
    """Test suite for the success predicates."""

    def test_ok_with_payload_succeeds(self):
        result = success({"did": "did:plc:abc123"}, 200)
        assert result.succeeded is True
        assert result.status_succeeded is True
        assert result.error_detail is None

    def test_bad_request_fails_and_exposes_code(self):
        result = failure(400, "InvalidRequest", "Input/handle must be a valid handle")
        assert result.succeeded is False
        assert result.status_succeeded is False
        assert result.error == "InvalidRequest"
        assert result.error_detail.message == "Input/handle must be a valid handle"

    def test_no_content_is_not_succeeded(self):
        result = no_content()
        assert result.status == 204
        assert result.status_succeeded is True
        assert result.succeeded is False

    def test_ok_without_payload_is_not_succeeded(self):
        assert HttpResult(status=200).succeeded is False

    def test_network_failure_has_no_status(self):
        result = network_failure(ErrorCode.TIMEOUT, "timed out")
        assert result.status is None
        assert result.succeeded is False
        assert result.is_transient is True

    def test_server_error_is_transient(self):
        assert failure(502).is_transient is True
        assert failure(400, "InvalidRequest").is_transient is False

    def test_failure_without_detail(self):
        assert failure(404).error_detail is None
        assert failure(404).error is None

    def test_success_status_with_error_is_failed(self):
        result = HttpResult(
            status=200,
            result={"did": "did:plc:abc123"},
            error_detail=AtErrorDetail(error=ErrorCode.DID_DOCUMENT_INVALID),
        )
        assert result.failed is True
        assert result.succeeded is False
        with pytest.raises(ResolutionError):
            result.ensure_success()

    @pytest.mark.parametrize(
        "result",
        [
            success("x"),
            no_content(),
            failure(400, "InvalidRequest"),
            failure(200, "InvalidRequest"),
            network_failure(ErrorCode.TIMEOUT),
            HttpResult(status=200, result="x", error_detail=AtErrorDetail()),
        ],
    )
    def test_succeeded_and_failed_exclusive(self, result):
        assert not (result.succeeded and result.failed)


class TestMapAndCast:
    """Test suite for payload transformation."""

    def test_map_success(self):
        result = success("did:plc:abc123").map(lambda did: did.upper())
        assert result.result == "DID:PLC:ABC123"
        assert result.status == 200

    def test_map_passes_failure_through(self):
        called = []
        result = failure(400, "InvalidRequest").map(lambda value: called.append(value))
        assert called == []
        assert result.error == "InvalidRequest"
        assert result.status == 400

    def test_cast_keeps_error(self):
        original = failure(None, ErrorCode.NO_SERVICE_ENDPOINT, "nope")
        cast = original.cast()
        assert cast.error_detail == original.error_detail
        assert cast.result is None


class TestEnsureSuccess:
    """Test suite for the fail-fast conversion."""

    def test_returns_payload(self):
        assert success({"a": 1}).ensure_success() == {"a": 1}

    def test_no_content_returns_none(self):
        assert no_content().ensure_success() is None

    @pytest.mark.parametrize(
        "result,exception",
        [
            (failure(None, ErrorCode.INVALID_IDENTIFIER, "bad"), FormatError),
            (failure(None, ErrorCode.HANDLE_RESOLUTION_FAILED), ResolutionError),
            (failure(404, ErrorCode.DID_RESOLUTION_FAILED), ResolutionError),
            (failure(200, ErrorCode.DID_DOCUMENT_INVALID), ResolutionError),
            (failure(None, ErrorCode.NO_SERVICE_ENDPOINT), ResolutionError),
            (failure(401, ErrorCode.AUTH_FACTOR_TOKEN_REQUIRED), AuthenticationError),
            (failure(401, ErrorCode.AUTHENTICATION_REQUIRED), AuthenticationError),
            (failure(401, "AuthenticationRequired"), AuthenticationError),
            (failure(401), AuthenticationError),
            (failure(401, ErrorCode.SESSION_EXPIRED), SessionExpiredError),
            (failure(400, ErrorCode.EXPIRED_TOKEN), SessionExpiredError),
            (network_failure(ErrorCode.NETWORK_ERROR), TransientNetworkError),
            (failure(503), TransientNetworkError),
            (failure(400, "InvalidRequest"), HttpResultError),
        ],
    )
    def test_raises_taxonomy(self, result, exception):
        with pytest.raises(exception) as exc_info:
            result.ensure_success()
        assert exc_info.value.result is result

    def test_message_contains_code(self):
        error = exception_for(failure(400, "InvalidRequest", "bad handle"))
        assert "InvalidRequest" in str(error)
        assert "bad handle" in str(error)
        assert "400" in str(error)


def test_error_detail_model():
    detail = AtErrorDetail.model_validate({"error": "ExpiredToken", "message": "Token has expired"})
    assert detail.error == "ExpiredToken"
    assert AtErrorDetail().error is None
