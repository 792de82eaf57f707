import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from os import PathLike
from types import MappingProxyType
from typing import Any

from eth_utils import is_checksum_address
from ethereum_rpc import Address

from ._client import Client
from ._contract_abi import ContractDescriptor
from ._converters import Converter, ConverterRegistry
from ._extractor import FieldFailure, extract
from ._loader import ContractsSource, load_contracts
from ._mapping import MappingRule, apply_mapping, as_mapping_spec
from ._provider import Provider
from ._selector import select_accessors

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when the mapper or a particular ``map()`` call is configured incorrectly."""


class UnknownContract(ConfigurationError):
    """Raised when the requested contract name is not among the loaded contracts."""


class InvalidAddress(ConfigurationError):
    """Raised when the contract address is not a valid Ethereum address."""


@dataclass(frozen=True)
class MapperConfig:
    """
    Settings of a :py:class:`Mapper`.

    ``provider`` is used for contract calls if given;
    otherwise the provider is looked up in ``networks`` by ``network_name``.
    """

    provider: None | Provider = None
    networks: Mapping[str, Provider] = field(default_factory=dict)
    network_name: None | str = None
    contracts: ContractsSource = field(default_factory=dict)
    working_directory: None | str | PathLike[str] = None
    types: Mapping[str, Converter] = field(default_factory=dict)
    mapping: Mapping[str, MappingRule] = field(default_factory=dict)
    max_concurrency: None | int = None
    call_timeout: None | float = None

    def merged(self, mapping: None | Mapping[str, Any] = None) -> "MapperConfig":
        """
        Returns the settings in effect for a single call:
        ``mapping``, if given, replaces the default mapping.
        Nothing else can be overridden per call.
        """
        if mapping is None:
            return self
        try:
            return replace(self, mapping=as_mapping_spec(mapping))
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc

    def resolve_provider(self) -> Provider:
        if self.provider is not None:
            return self.provider
        if self.network_name is None:
            raise ConfigurationError("Either `provider` or `network_name` must be given")
        if self.network_name not in self.networks:
            known = ", ".join(sorted(self.networks)) or "none"
            raise ConfigurationError(
                f"Unknown network `{self.network_name}` (known networks: {known})"
            )
        return self.networks[self.network_name]


@dataclass(frozen=True)
class MapResult:
    """The final object along with the fields lost on the way."""

    values: dict[str, Any]
    """The final object."""

    failures: tuple[FieldFailure, ...]
    """Per-field errors: failed calls and conversions first, then failed transforms."""


def _parse_address(address: str | Address) -> Address:
    if isinstance(address, Address):
        return address
    if not isinstance(address, str):
        raise InvalidAddress(f"Expected a string or an `Address`, got {type(address).__name__}")

    # `Address.from_hex()` takes any letter case, but a mixed-case string
    # is an EIP-55 checksummed one and must be valid as such.
    digits = address[2:] if address.startswith(("0x", "0X")) else address
    if digits not in (digits.lower(), digits.upper()) and not is_checksum_address("0x" + digits):
        raise InvalidAddress(f"Invalid contract address {address!r}: invalid address checksum")

    try:
        return Address.from_hex(address)
    except (TypeError, ValueError) as exc:
        raise InvalidAddress(f"Invalid contract address {address!r}: {exc}") from exc


class Mapper:
    """
    Reads the state of deployed contracts through their read-only accessors.

    The contracts are loaded, and the type converters and the default mapping are validated
    once on creation; see :py:class:`MapperConfig` for the meaning of the arguments.
    """

    def __init__(
        self,
        *,
        provider: None | Provider = None,
        networks: None | Mapping[str, Provider] = None,
        network_name: None | str = None,
        contracts: None | ContractsSource = None,
        working_directory: None | str | PathLike[str] = None,
        types: None | Mapping[str, Converter] = None,
        mapping: None | Mapping[str, Any] = None,
        max_concurrency: None | int = None,
        call_timeout: None | float = None,
    ):
        try:
            default_mapping = as_mapping_spec(mapping)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc

        self._config = MapperConfig(
            provider=provider,
            networks=MappingProxyType(dict(networks or {})),
            network_name=network_name,
            contracts=contracts if contracts is not None else {},
            working_directory=working_directory,
            types=MappingProxyType(dict(types or {})),
            mapping=MappingProxyType(default_mapping),
            max_concurrency=max_concurrency,
            call_timeout=call_timeout,
        )

        if max_concurrency is not None and max_concurrency < 1:
            raise ConfigurationError(
                f"`max_concurrency` must be a positive integer, got {max_concurrency}"
            )

        self._client = Client(self._config.resolve_provider())

        try:
            self._registry = ConverterRegistry(self._config.types)
        except TypeError as exc:
            raise ConfigurationError(str(exc)) from exc

        self._contracts = MappingProxyType(
            load_contracts(self._config.contracts, self._config.working_directory)
        )

    @property
    def config(self) -> MapperConfig:
        """The settings this mapper was created with."""
        return self._config

    @property
    def contracts(self) -> Mapping[str, ContractDescriptor]:
        """Loaded contract interfaces."""
        return self._contracts

    def _descriptor(self, contract_name: str) -> ContractDescriptor:
        if contract_name not in self._contracts:
            known = ", ".join(sorted(self._contracts)) or "none"
            raise UnknownContract(f"Unknown contract `{contract_name}` (known contracts: {known})")
        return self._contracts[contract_name]

    def accessors(self, contract_name: str) -> list[str]:
        """Returns the names of the accessors that will be called for the given contract."""
        return [
            entry.name
            for entry in select_accessors(self._descriptor(contract_name))
            if entry.name is not None
        ]

    async def map_with_diagnostics(
        self,
        contract_name: str,
        address: str | Address,
        mapping: None | Mapping[str, Any] = None,
    ) -> MapResult:
        """
        Same as :py:meth:`map`, but also returns the fields that were lost
        because of failed calls, conversions or transforms.
        """
        # Everything is validated before any requests are made.
        descriptor = self._descriptor(contract_name)
        contract_address = _parse_address(address)
        config = self._config.merged(mapping)

        accessors = select_accessors(descriptor)
        logger.debug(
            "Mapping `%s` at %s (%d accessors)", contract_name, contract_address, len(accessors)
        )

        async with self._client.session() as session:
            extraction = await extract(
                session,
                contract_address,
                accessors,
                self._registry,
                max_concurrency=config.max_concurrency,
                call_timeout=config.call_timeout,
            )

        outcome = apply_mapping(extraction.values, config.mapping)
        return MapResult(values=outcome.values, failures=extraction.failures + outcome.failures)

    async def map(
        self,
        contract_name: str,
        address: str | Address,
        mapping: None | Mapping[str, Any] = None,
    ) -> dict[str, Any]:
        """
        Calls every read-only accessor of the contract ``contract_name`` deployed at ``address``
        and returns the converted values remapped according to ``mapping``
        (or the default mapping given on creation).

        Raises :py:class:`UnknownContract`, :py:class:`InvalidAddress`
        or :py:class:`ConfigurationError` before making any requests.
        Fields that could not be read, converted or transformed are omitted from the result.
        """
        result = await self.map_with_diagnostics(contract_name, address, mapping)
        return result.values
