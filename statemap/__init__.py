"""Reads the state of deployed contracts through their read-only accessors."""

from ._abi_types import ABI_JSON, ABIDecodingError
from ._client import (
    Client,
    ClientSession,
    ContractLegacyError,
    ContractPanic,
    NoContractCode,
    ReadCaller,
)
from ._contract_abi import AbiEntry, ContractDescriptor, EntryKind, Fields, Mutability
from ._converters import DEFAULT_CONVERTERS, Converter, ConverterRegistry
from ._extractor import Extraction, FieldFailure, Stage, extract
from ._http_provider import HTTPError, HTTPProvider
from ._loader import ContractLoadingError, load_contracts
from ._mapper import (
    ConfigurationError,
    InvalidAddress,
    Mapper,
    MapperConfig,
    MapResult,
    UnknownContract,
)
from ._mapping import (
    DestinationKey,
    FanOut,
    MappingOutcome,
    MappingRule,
    TransformedKey,
    apply_mapping,
    as_mapping_spec,
    as_rule,
)
from ._provider import (
    InvalidResponse,
    ProtocolError,
    Provider,
    ProviderError,
    ProviderSession,
    Unreachable,
)
from ._selector import select_accessors

__all__ = [
    "ABI_JSON",
    "ABIDecodingError",
    "AbiEntry",
    "Client",
    "ClientSession",
    "ConfigurationError",
    "ContractDescriptor",
    "ContractLegacyError",
    "ContractLoadingError",
    "ContractPanic",
    "Converter",
    "ConverterRegistry",
    "DEFAULT_CONVERTERS",
    "DestinationKey",
    "EntryKind",
    "Extraction",
    "FanOut",
    "FieldFailure",
    "Fields",
    "HTTPError",
    "HTTPProvider",
    "InvalidAddress",
    "InvalidResponse",
    "MapResult",
    "Mapper",
    "MapperConfig",
    "MappingOutcome",
    "MappingRule",
    "Mutability",
    "NoContractCode",
    "ProtocolError",
    "Provider",
    "ProviderError",
    "ProviderSession",
    "ReadCaller",
    "Stage",
    "TransformedKey",
    "UnknownContract",
    "Unreachable",
    "apply_mapping",
    "as_mapping_spec",
    "as_rule",
    "extract",
    "load_contracts",
    "select_accessors",
]
