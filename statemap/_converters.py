from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from ethereum_rpc import Address

from ._contract_abi import AbiEntry

Converter = Callable[[Any], Any]
"""A function converting a decoded ABI value into the output representation."""


def _identity(value: Any) -> Any:
    return value


def _to_decimal_string(value: Any) -> str:
    return str(int(value))


def _to_checksum(value: Address) -> str:
    return value.checksum


def _default_converters() -> dict[str, Converter]:
    converters: dict[str, Converter] = {}

    # Integers that may not fit into a double-precision float mantissa (53 bits)
    # are converted to decimal strings so that they survive JSON round-trips.
    for bits in range(64, 257, 8):
        converters[f"uint{bits}"] = _to_decimal_string
        converters[f"int{bits}"] = _to_decimal_string
    converters["uint"] = _to_decimal_string
    converters["int"] = _to_decimal_string

    converters["address"] = _to_checksum
    return converters


DEFAULT_CONVERTERS: Mapping[str, Converter] = MappingProxyType(_default_converters())
"""Converters applied when no user converter is registered for the exact ABI type."""


class ConverterRegistry:
    """
    Resolves the function converting a decoded value by the declared ABI type.

    User converters take precedence over ``defaults``.
    Lookup is by the exact type string: a converter registered for ``uint``
    does not apply to ``uint256``, and vice versa.
    Types without a registered converter are passed through unchanged.
    """

    def __init__(
        self,
        types: None | Mapping[str, Converter] = None,
        *,
        defaults: Mapping[str, Converter] = DEFAULT_CONVERTERS,
    ):
        types = dict(types or {})
        for type_name, converter in types.items():
            if not isinstance(type_name, str):
                raise TypeError(f"Type names must be strings, got {type(type_name).__name__}")
            if not callable(converter):
                raise TypeError(f"The converter for `{type_name}` must be callable")

        self._types = MappingProxyType(types)
        self._defaults = MappingProxyType(dict(defaults))

    @property
    def types(self) -> Mapping[str, Converter]:
        """User-registered converters."""
        return self._types

    def resolve(self, type_name: str) -> Converter:
        """Returns the converter for the given ABI type string."""
        if type_name in self._types:
            return self._types[type_name]
        if type_name in self._defaults:
            return self._defaults[type_name]
        return _identity

    def convert(self, type_name: str, value: Any) -> Any:
        """Converts the value according to its ABI type string."""
        return self.resolve(type_name)(value)

    def convert_output(self, entry: AbiEntry, value: Any) -> Any:
        """
        Converts the decoded output of a method call.

        A single output is converted according to its type as declared in the ABI.
        Several outputs (a tuple or a dictionary, see :py:meth:`AbiEntry.decode_output`)
        are converted element-wise according to the declared type of each element.
        """
        declared_types = entry.outputs.declared_types
        if len(declared_types) == 0:
            return value
        if len(declared_types) == 1:
            return self.convert(declared_types[0], value)
        if isinstance(value, Mapping):
            return {
                name: self.convert(type_name, value[name])
                for name, type_name in zip(entry.outputs.names, declared_types, strict=True)
            }
        return tuple(
            self.convert(type_name, item)
            for type_name, item in zip(declared_types, value, strict=True)
        )
