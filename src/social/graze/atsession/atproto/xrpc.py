from abc import abstractmethod
from dataclasses import dataclass
import asyncio
from types import TracebackType
from typing import Any, Dict, Optional, Protocol, Union
import logging

from aiohttp import ClientError, ClientResponse, ClientSession, ClientTimeout, hdrs
from multidict import CIMultiDictProxy

from social.graze.atsession.atproto.errors import ErrorCode
from social.graze.atsession.atproto.result import (
    HttpResult,
    failure,
    network_failure,
    no_content,
    success,
)

logger = logging.getLogger(__name__)


class _LoggerStub(Protocol):
    """_Logger defines which methods logger object should have."""

    @abstractmethod
    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        pass

    @abstractmethod
    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        pass

    @abstractmethod
    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        pass


_LoggerType = Union[_LoggerStub, logging.Logger]


class DocumentFetcher(Protocol):
    """What the identity resolver needs from the network layer."""

    async def get_text(
        self, url: str, timeout: Optional[float] = None
    ) -> HttpResult[str]: ...

    async def get_json(
        self, url: str, timeout: Optional[float] = None
    ) -> HttpResult[Any]: ...


@dataclass
class XrpcResponse:
    status: int
    headers: CIMultiDictProxy[str]
    body: str | bytes | dict[str, Any] | list[Any] | None = None

    @staticmethod
    async def from_aiohttp_response(response: ClientResponse) -> "XrpcResponse":
        status = response.status
        headers = response.headers

        content_type = response.headers.get(hdrs.CONTENT_TYPE, "")

        if content_type.startswith("application/json"):
            return XrpcResponse(
                status=status, headers=headers, body=await response.json()
            )
        elif content_type.startswith("text/"):
            return XrpcResponse(
                status=status, headers=headers, body=await response.text()
            )
        else:
            return XrpcResponse(
                status=status, headers=headers, body=await response.read()
            )

    def body_matches_kv(self, key: str, value: Any) -> bool:
        if self.body is None:
            return False

        return (
            isinstance(self.body, dict) and key in self.body and self.body[key] == value
        )

    def to_result(self) -> HttpResult[Any]:
        if 200 <= self.status < 300:
            if self.body is None or self.body == b"" or self.body == "":
                return no_content(self.status)
            return success(self.body, self.status)

        if isinstance(self.body, dict):
            error = self.body.get("error", None)
            message = self.body.get("message", None)
            return failure(
                self.status,
                error if isinstance(error, str) else None,
                message if isinstance(message, str) else None,
            )
        return failure(self.status)


class XrpcTransport:
    """
    The network-call layer. Every request made by the resolver and the session
    manager goes through here and comes back as an ``HttpResult``; nothing in this
    class raises for a failed request.
    """

    def __init__(
        self,
        client_session: ClientSession | None = None,
        timeout: float = 30.0,
        logger: _LoggerType | None = None,
        *args: Any,
        **kwargs: Any,
    ) -> None:
        if client_session is not None:
            client = client_session
            closed = None
        else:
            client = ClientSession(*args, **kwargs)
            closed = False

        self._client = client
        self._closed = closed
        self._timeout = timeout
        self._logger: _LoggerType = logger or logging.getLogger("atsession.xrpc")

    async def get_text(
        self, url: str, timeout: Optional[float] = None
    ) -> HttpResult[str]:
        result = await self.request(hdrs.METH_GET, url, timeout=timeout)
        if result.succeeded and not isinstance(result.result, str):
            if isinstance(result.result, bytes):
                try:
                    return success(result.result.decode("utf-8"), result.status)
                except UnicodeDecodeError:
                    pass
            return failure(
                result.status, ErrorCode.INVALID_RESPONSE, "expected a text body"
            )
        return result

    async def get_json(
        self, url: str, timeout: Optional[float] = None
    ) -> HttpResult[Any]:
        return await self.request(hdrs.METH_GET, url, timeout=timeout)

    async def procedure(
        self,
        url: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResult[Any]:
        """Invoke an XRPC procedure (a POST with an optional JSON body)."""
        kwargs: Dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        return await self.request(
            hdrs.METH_POST, url, headers=headers, timeout=timeout, **kwargs
        )

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> HttpResult[Any]:
        self._logger.debug(f"Making request: {method} {url}")

        client_timeout = ClientTimeout(total=timeout or self._timeout)
        try:
            async with self._client.request(
                method, url, headers=headers, timeout=client_timeout, **kwargs
            ) as response:
                try:
                    xrpc_response = await XrpcResponse.from_aiohttp_response(response)
                except ValueError as e:
                    return failure(response.status, ErrorCode.INVALID_RESPONSE, str(e))
        except asyncio.TimeoutError:
            self._logger.warning(f"Request timed out: {method} {url}")
            return network_failure(ErrorCode.TIMEOUT, f"{method} {url} timed out")
        except ClientError as e:
            # ContentTypeError is a ClientError but a response did arrive.
            status = getattr(e, "status", None)
            if status:
                return failure(status, ErrorCode.INVALID_RESPONSE, str(e))
            self._logger.warning(f"Request failed: {method} {url}: {e}")
            return network_failure(ErrorCode.NETWORK_ERROR, str(e))

        return xrpc_response.to_result()

    async def close(self) -> None:
        await self._client.close()
        self._closed = True

    async def __aenter__(self) -> "XrpcTransport":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._closed is not None:
            await self.close()

    def __del__(self) -> None:
        if getattr(self, "_closed", None) is None:
            # in case object was not initialized (__init__ raised an exception)
            # or the client session is owned by the caller
            return

        if not self._closed:
            self._logger.warning("XRPC transport was not closed")
