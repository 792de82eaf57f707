"""JSON RPC over HTTP(S) using `httpx`."""

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from http import HTTPStatus
from itertools import count
from json import JSONDecodeError
from typing import cast

import httpx
from compages import StructuringError
from ethereum_rpc import RPCError, structure

from ._provider import (
    RPC_JSON,
    InvalidResponse,
    ProtocolError,
    Provider,
    ProviderError,
    ProviderSession,
    Unreachable,
)

logger = logging.getLogger(__name__)


class HTTPError(ProtocolError):
    """
    The node answered with a non-200 status
    and the body does not carry a JSON RPC ``error`` object.
    """

    status: HTTPStatus
    """The status of the response."""

    message: str
    """The body of the response."""

    def __init__(self, status_code: int, message: str):
        try:
            status = HTTPStatus(status_code)
        except ValueError:  # pragma: no cover
            # `httpx` passes through whatever status code the server sends
            status = HTTPStatus.INTERNAL_SERVER_ERROR

        super().__init__(status, message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return f"HTTP status {self.status.value}: {self.message}"


def _unpack_response(response: httpx.Response) -> RPC_JSON:
    status = response.status_code

    try:
        response_json = response.json()
    except JSONDecodeError as exc:
        body = response.content.decode(errors="replace")
        raise ProviderError(
            InvalidResponse(f"Expected a JSON response, got HTTP status {status}: {body}")
        ) from exc

    if not isinstance(response_json, Mapping):
        raise ProviderError(
            InvalidResponse(f"RPC response must be a dictionary, got: {response_json}")
        )
    response_json = cast("Mapping[str, RPC_JSON]", response_json)

    # Reverted calls come with the status 200 and an `error` object,
    # and some nodes send the `error` object with a 4xx/5xx status,
    # so the object is checked before the status.
    if "error" in response_json:
        try:
            error = structure(RPCError, response_json["error"])
        except StructuringError as exc:
            raise ProviderError(
                InvalidResponse(f"Failed to parse an error response: {response_json}")
            ) from exc
        raise ProviderError(error)

    if status != HTTPStatus.OK:
        raise ProviderError(HTTPError(status, response.content.decode(errors="replace")))

    if "result" not in response_json:
        raise ProviderError(
            InvalidResponse(f"`result` is not present in the response: {response_json}")
        )
    return response_json["result"]


class HTTPProvider(Provider):
    """
    Sends requests to the node at ``url``.

    ``timeout`` (in seconds) applies to each request separately;
    ``headers`` are added to every request (e.g. for authorization with a hosted node).
    ``transport`` replaces the default ``httpx`` transport.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: None | float = 10.0,
        headers: None | Mapping[str, str] = None,
        transport: None | httpx.AsyncBaseTransport = None,
    ):
        self._url = url
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._transport = transport

    @asynccontextmanager
    async def session(self) -> AsyncIterator["HTTPProviderSession"]:
        async with httpx.AsyncClient(
            timeout=self._timeout, headers=self._headers, transport=self._transport
        ) as client:
            yield HTTPProviderSession(self._url, client)


class HTTPProviderSession(ProviderSession):
    def __init__(self, url: str, http_client: httpx.AsyncClient):
        self._url = url
        self._client = http_client
        # Several requests may be in flight at once, each gets its own id.
        self._request_ids = count(1)

    async def rpc(self, method: str, *args: RPC_JSON) -> RPC_JSON:
        request_id = next(self._request_ids)
        request = {"jsonrpc": "2.0", "method": method, "params": list(args), "id": request_id}
        logger.debug("Request #%d: %s", request_id, method)

        try:
            response = await self._client.post(self._url, json=request)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ProviderError(Unreachable(str(exc))) from exc

        return _unpack_response(response)
