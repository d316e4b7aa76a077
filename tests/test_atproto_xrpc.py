"""
Unit tests for the XRPC transport.

Tests cover response decoding by content type, the mapping of XRPC error bodies
onto HttpResult, and how timeouts and connection errors surface.
"""

import asyncio
import json
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from aiohttp import (
    ClientConnectionError,
    ClientResponse,
    ClientResponseError,
    ClientTimeout,
    hdrs,
)
from multidict import CIMultiDict, CIMultiDictProxy

from social.graze.atsession.atproto.errors import ErrorCode
from social.graze.atsession.atproto.xrpc import XrpcResponse, XrpcTransport


def create_headers_proxy(headers: Dict[str, str]) -> CIMultiDictProxy:
    return CIMultiDictProxy(CIMultiDict(headers))


def create_mock_response(
    status: int = 200,
    content_type: str = "application/json",
    body: Any = None,
) -> ClientResponse:
    """Create a mock aiohttp ClientResponse."""
    mock_response = AsyncMock(spec=ClientResponse)
    mock_response.status = status
    mock_response.headers = create_headers_proxy({hdrs.CONTENT_TYPE: content_type})

    if content_type.startswith("application/json"):
        mock_response.json = AsyncMock(return_value=body)
        mock_response.text = AsyncMock(return_value=json.dumps(body))
    elif content_type.startswith("text/"):
        mock_response.json = AsyncMock(side_effect=Exception("Not JSON"))
        mock_response.text = AsyncMock(return_value=body)
    else:
        mock_response.json = AsyncMock(side_effect=Exception("Not JSON"))
        mock_response.text = AsyncMock(side_effect=Exception("Not text"))
    mock_response.read = AsyncMock(
        return_value=body if isinstance(body, bytes) else b""
    )
    return mock_response


def create_mock_client(response: Any = None, side_effect: Any = None) -> MagicMock:
    """A ClientSession whose request() context manager yields ``response``."""
    client = MagicMock()
    if side_effect is not None:
        client.request.side_effect = side_effect
    else:
        client.request.return_value.__aenter__.return_value = response
        client.request.return_value.__aexit__.return_value = None
    client.close = AsyncMock()
    return client


class TestXrpcResponse:
    """Test suite for XrpcResponse decoding."""

    @pytest.mark.asyncio
    async def test_json_body(self):
        response = create_mock_response(body={"did": "did:plc:abc123"})
        xrpc_response = await XrpcResponse.from_aiohttp_response(response)
        assert xrpc_response.status == 200
        assert xrpc_response.body == {"did": "did:plc:abc123"}
        assert xrpc_response.body_matches_kv("did", "did:plc:abc123")
        assert not xrpc_response.body_matches_kv("did", "did:plc:other")

    @pytest.mark.asyncio
    async def test_text_body(self):
        response = create_mock_response(content_type="text/plain", body="did:plc:abc123")
        xrpc_response = await XrpcResponse.from_aiohttp_response(response)
        assert xrpc_response.body == "did:plc:abc123"
        assert not xrpc_response.body_matches_kv("did", "did:plc:abc123")

    @pytest.mark.asyncio
    async def test_binary_body(self):
        response = create_mock_response(
            content_type="application/octet-stream", body=b"\x00\x01"
        )
        xrpc_response = await XrpcResponse.from_aiohttp_response(response)
        assert xrpc_response.body == b"\x00\x01"

    def test_error_body_to_result(self):
        xrpc_response = XrpcResponse(
            status=400,
            headers=create_headers_proxy({}),
            body={"error": "ExpiredToken", "message": "Token has expired"},
        )
        result = xrpc_response.to_result()
        assert result.status == 400
        assert result.error == "ExpiredToken"
        assert result.error_detail.message == "Token has expired"

    def test_non_string_error_fields_ignored(self):
        xrpc_response = XrpcResponse(
            status=400, headers=create_headers_proxy({}), body={"error": 42}
        )
        result = xrpc_response.to_result()
        assert result.status == 400
        assert result.error_detail is None

    def test_empty_success_is_no_content(self):
        xrpc_response = XrpcResponse(
            status=200, headers=create_headers_proxy({}), body=b""
        )
        result = xrpc_response.to_result()
        assert result.status_succeeded
        assert not result.succeeded
        assert not result.failed


class TestXrpcTransport:
    """Test suite for XrpcTransport requests."""

    @pytest.mark.asyncio
    async def test_procedure_posts_json(self):
        client = create_mock_client(create_mock_response(body={"accessJwt": "a"}))
        transport = XrpcTransport(client, timeout=5.0)

        result = await transport.procedure(
            "https://pds.example.org/xrpc/com.atproto.server.createSession",
            json={"identifier": "did:plc:abc123", "password": "hunter2"},
        )

        assert result.succeeded
        assert result.result == {"accessJwt": "a"}
        args, kwargs = client.request.call_args
        assert args == (
            hdrs.METH_POST,
            "https://pds.example.org/xrpc/com.atproto.server.createSession",
        )
        assert kwargs["json"] == {"identifier": "did:plc:abc123", "password": "hunter2"}
        assert kwargs["timeout"] == ClientTimeout(total=5.0)

    @pytest.mark.asyncio
    async def test_procedure_without_body_sends_no_json(self):
        client = create_mock_client(create_mock_response(body={}))
        transport = XrpcTransport(client)

        await transport.procedure(
            "https://pds.example.org/xrpc/com.atproto.server.refreshSession",
            headers={"Authorization": "Bearer r"},
        )

        _, kwargs = client.request.call_args
        assert "json" not in kwargs
        assert kwargs["headers"] == {"Authorization": "Bearer r"}

    @pytest.mark.asyncio
    async def test_per_call_timeout(self):
        client = create_mock_client(create_mock_response(body={}))
        transport = XrpcTransport(client, timeout=30.0)

        await transport.get_json("https://plc.directory/did:plc:abc123", timeout=2.5)

        _, kwargs = client.request.call_args
        assert kwargs["timeout"] == ClientTimeout(total=2.5)

    @pytest.mark.asyncio
    async def test_error_body(self):
        client = create_mock_client(
            create_mock_response(
                status=401,
                body={"error": "AuthFactorTokenRequired", "message": "A sign in code has been sent"},
            )
        )
        transport = XrpcTransport(client)

        result = await transport.procedure("https://pds.example.org/xrpc/x.y.z", json={})

        assert result.failed
        assert result.status == 401
        assert result.error == ErrorCode.AUTH_FACTOR_TOKEN_REQUIRED

    @pytest.mark.asyncio
    async def test_timeout(self):
        client = create_mock_client(side_effect=asyncio.TimeoutError())
        transport = XrpcTransport(client)

        result = await transport.get_json("https://plc.directory/did:plc:abc123")

        assert result.status is None
        assert result.error == ErrorCode.TIMEOUT
        assert result.is_transient

    @pytest.mark.asyncio
    async def test_connection_error(self):
        client = create_mock_client(side_effect=ClientConnectionError("refused"))
        transport = XrpcTransport(client)

        result = await transport.get_json("https://plc.directory/did:plc:abc123")

        assert result.status is None
        assert result.error == ErrorCode.NETWORK_ERROR
        assert result.is_transient

    @pytest.mark.asyncio
    async def test_response_error_keeps_status(self):
        client = create_mock_client(
            side_effect=ClientResponseError(
                request_info=Mock(), history=(), status=502, message="Bad Gateway"
            )
        )
        transport = XrpcTransport(client)

        result = await transport.get_json("https://plc.directory/did:plc:abc123")

        assert result.status == 502
        assert result.error == ErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_malformed_json_keeps_status(self):
        response = create_mock_response(body=None)
        response.json = AsyncMock(side_effect=json.JSONDecodeError("bad", "{", 0))
        transport = XrpcTransport(create_mock_client(response))

        result = await transport.get_json("https://plc.directory/did:plc:abc123")

        assert result.status == 200
        assert result.failed
        assert result.error == ErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_get_text_decodes_bytes(self):
        response = create_mock_response(
            content_type="application/octet-stream", body=b"did:plc:abc123\n"
        )
        transport = XrpcTransport(create_mock_client(response))

        result = await transport.get_text(
            "https://alice.example.com/.well-known/atproto-did"
        )

        assert result.succeeded
        assert result.result == "did:plc:abc123\n"

    @pytest.mark.asyncio
    async def test_get_text_rejects_json(self):
        response = create_mock_response(body={"did": "did:plc:abc123"})
        transport = XrpcTransport(create_mock_client(response))

        result = await transport.get_text(
            "https://alice.example.com/.well-known/atproto-did"
        )

        assert result.failed
        assert result.error == ErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_context_manager_leaves_borrowed_session_open(self):
        client = create_mock_client(create_mock_response(body={}))
        async with XrpcTransport(client):
            pass
        client.close.assert_not_called()
