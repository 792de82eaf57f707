"""The transport layer: sending JSON RPC requests to an Ethereum node."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass

from ethereum_rpc import RPCError

RPC_JSON = None | bool | int | float | str | Sequence["RPC_JSON"] | Mapping[str, "RPC_JSON"]
"""JSON-compatible values of RPC parameters and results."""


class InvalidResponse(Exception):
    """Raised when the node responded with something that is not a valid JSON RPC response."""


class Unreachable(Exception):
    """Raised when the node could not be reached (connection refused, timed out etc)."""


class ProtocolError(ABC, Exception):
    """
    The transport reported a failure without a JSON RPC ``error`` object
    that would explain it.
    Each transport derives its own error carrying the transport-specific details
    (e.g. :py:class:`HTTPError`).
    """


@dataclass
class ProviderError(Exception):
    """A request to the node failed."""

    error: RPCError | Unreachable | InvalidResponse | ProtocolError
    """The reason of the failure."""

    def __str__(self) -> str:
        return f"Provider error: {self.error}"


class Provider(ABC):
    """A source of contract state: something that can answer ``eth_call`` requests."""

    @abstractmethod
    @asynccontextmanager
    async def session(self) -> AsyncIterator["ProviderSession"]:
        """
        Opens a session that is used for all the calls of a single ``map()``.
        The session may be used by several tasks at once.
        """
        # mypy does not work with abstract generators correctly.
        # See https://github.com/python/mypy/issues/5070
        yield  # type: ignore[misc]


class ProviderSession(ABC):
    """An open connection to the node."""

    @abstractmethod
    async def rpc(self, method: str, *args: RPC_JSON) -> RPC_JSON:
        """
        Sends a request with the given method and already serialized parameters,
        and returns the ``result`` field of the response.
        Raises :py:class:`ProviderError` on failure.
        """
        ...
