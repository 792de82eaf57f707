from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from enum import Enum
from typing import Any

from compages import StructuringError
from ethereum_rpc import (
    Address,
    BlockLabel,
    EthCallParams,
    RPCError,
    RPCErrorCode,
    structure,
    unstructure,
)

from ._abi_types import ABIDecodingError, String, UInt, decode_args
from ._contract_abi import SELECTOR_LENGTH, AbiEntry
from ._provider import InvalidResponse, Provider, ProviderError, ProviderSession

# Selectors of the errors Solidity raises by itself.
_LEGACY_ERROR_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
_PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)


class ReadCaller(ABC):
    """
    Something that can call a read-only contract method without arguments
    and return its decoded output.
    """

    @abstractmethod
    async def call(self, address: Address, entry: AbiEntry) -> Any:
        """
        Calls the method ``entry`` of the contract deployed at ``address``
        and returns the decoded output (see :py:meth:`AbiEntry.decode_output`).
        Raises an exception if the call failed for any reason.
        """
        ...


class NoContractCode(Exception):
    """Raised when a call returned no data while the method declares some outputs."""


class ContractPanicReason(Enum):
    """Panic codes emitted by the Solidity compiler."""

    UNKNOWN = -1
    COMPILER = 0
    ASSERTION = 0x01
    OVERFLOW = 0x11
    DIVISION_BY_ZERO = 0x12
    INVALID_ENUM_VALUE = 0x21
    INVALID_ENCODING = 0x22
    EMPTY_ARRAY = 0x31
    OUT_OF_BOUNDS = 0x32
    OUT_OF_MEMORY = 0x41
    ZERO_DEREFERENCE = 0x51

    @classmethod
    def from_int(cls, val: int) -> "ContractPanicReason":
        try:
            return cls(val)
        except ValueError:
            return cls.UNKNOWN


class ContractPanic(Exception):
    """A panic raised in a contract call (e.g. a failed ``assert()``)."""

    Reason = ContractPanicReason

    reason: ContractPanicReason
    """The panic code, if it is a known one."""

    def __init__(self, reason: ContractPanicReason):
        super().__init__(reason)
        self.reason = reason


class ContractLegacyError(Exception):
    """The call reverted through ``require()`` or ``revert()`` with a string message (or none)."""

    message: str
    """The revert message (empty if none was given)."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def decode_revert(error: RPCError) -> None | ContractPanic | ContractLegacyError:
    """
    Attempts to interpret an RPC error as a revert raised by Solidity itself.
    Returns ``None`` if the error is of some other nature.
    """
    data = error.data or b""
    selector, payload = data[:SELECTOR_LENGTH], data[SELECTOR_LENGTH:]

    if selector == _PANIC_SELECTOR:
        (code,) = decode_args([UInt(256)], payload)
        return ContractPanic(ContractPanicReason.from_int(code))
    if selector == _LEGACY_ERROR_SELECTOR:
        (message,) = decode_args([String()], payload)
        return ContractLegacyError(message)

    # Nodes report a bare `revert()` as a generic error with "revert" in the message.
    if not data and error.parsed_code in (RPCErrorCode.SERVER_ERROR, RPCErrorCode.EXECUTION_ERROR):
        if "revert" in error.message:
            return ContractLegacyError("")

    return None


@contextmanager
def convert_errors() -> Iterator[None]:
    try:
        yield
    except ProviderError as exc:
        if not isinstance(exc.error, RPCError):
            raise
        try:
            decoded = decode_revert(exc.error)
        except ABIDecodingError:
            # Malformed revert data, keep the original error
            raise exc from None
        if decoded is None:
            raise
        raise decoded from exc


class Client:
    """A client performing read-only contract calls via a JSON RPC provider."""

    def __init__(self, provider: Provider):
        self._provider = provider

    @asynccontextmanager
    async def session(self) -> AsyncIterator["ClientSession"]:
        """Opens a provider session for a batch of calls."""
        async with self._provider.session() as provider_session:
            yield ClientSession(provider_session)


class ClientSession(ReadCaller):
    """
    Performs read-only calls within an open provider session.

    :py:meth:`call` may raise the following exceptions:
    :py:class:`ProviderError`,
    :py:class:`ContractLegacyError`,
    :py:class:`ContractPanic`,
    :py:class:`NoContractCode`,
    :py:class:`ABIDecodingError`.
    """

    def __init__(self, provider_session: ProviderSession):
        self._provider_session = provider_session

    async def eth_call(self, address: Address, data: bytes) -> bytes:
        """Calls the ``eth_call`` RPC method at the latest block and returns the raw output."""
        params = EthCallParams(to=address, data=data)
        with convert_errors():
            result = await self._provider_session.rpc(
                "eth_call", unstructure(params), unstructure(BlockLabel.LATEST)
            )

        try:
            return structure(bytes, result)
        except StructuringError as exc:
            raise ProviderError(InvalidResponse(f"eth_call: {exc}")) from exc

    async def call(self, address: Address, entry: AbiEntry) -> Any:
        output_bytes = await self.eth_call(address, entry.selector)
        # A call to an address without code succeeds and returns nothing.
        if not output_bytes and len(entry.outputs) > 0:
            raise NoContractCode(f"`{entry.signature}` returned no data at {address}")
        return entry.decode_output(output_bytes)
