"""Solidity types of accessor outputs, and their encoding via `eth_abi`."""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from functools import cached_property
from typing import Any

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from ethereum_rpc import Address

ABI_JSON = None | bool | int | float | str | Sequence["ABI_JSON"] | Mapping[str, "ABI_JSON"]
"""Values serializable to JSON."""


class ABIDecodingError(Exception):
    """Raised when the output of a call does not match the declared output types."""


class Type(ABC):
    """A Solidity type."""

    @property
    @abstractmethod
    def canonical_form(self) -> str:
        """The type string as used in signatures and by ``eth_abi``."""

    @abstractmethod
    def _normalize(self, val: Any) -> Any:
        """Checks a Python value and converts it to what ``eth_abi.encode()`` expects."""

    @abstractmethod
    def _denormalize(self, val: Any) -> Any:
        """Checks a value produced by ``eth_abi.decode()`` and wraps it if needed."""

    def __str__(self) -> str:
        return self.canonical_form

    def __eq__(self, other: object) -> bool:
        # `str()` carries everything about a type, including struct field names
        return type(self) is type(other) and str(self) == str(other)

    def __hash__(self) -> int:
        return hash(str(self))


class _Integer(Type):
    _signed: bool

    def __init__(self, bits: int):
        if bits <= 0 or bits > 256 or bits % 8 != 0:  # noqa: PLR2004
            raise ValueError(f"Incorrect `{self._prefix}` bit size: {bits}")
        self._bits = bits

    @property
    def _prefix(self) -> str:
        return "int" if self._signed else "uint"

    @property
    def canonical_form(self) -> str:
        return f"{self._prefix}{self._bits}"

    def _check_val(self, val: Any) -> int:
        # `bool` is a subclass of `int`, but it is almost certainly a mistake here.
        if not isinstance(val, int) or isinstance(val, bool):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to an integer, got {type(val).__name__}"
            )
        if self._signed:
            low, high = -(2 ** (self._bits - 1)), 2 ** (self._bits - 1)
        else:
            low, high = 0, 2**self._bits
        if not low <= val < high:
            kind = "a signed" if self._signed else "an unsigned"
            raise ValueError(
                f"`{self.canonical_form}` must correspond to {kind} integer "
                f"under {self._bits} bits, got {val}"
            )
        return int(val)

    def _normalize(self, val: Any) -> int:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> int:
        return self._check_val(val)


class UInt(_Integer):
    """``uint<bits>``"""

    _signed = False


class Int(_Integer):
    """``int<bits>``"""

    _signed = True


class Bytes(Type):
    """``bytes<size>``, or ``bytes`` if ``size`` is ``None``."""

    def __init__(self, size: None | int = None):
        if size is not None and (size <= 0 or size > 32):  # noqa: PLR2004
            raise ValueError(f"Incorrect `bytes` size: {size}")
        self._size = size

    @property
    def canonical_form(self) -> str:
        return f"bytes{self._size if self._size else ''}"

    def _check_val(self, val: Any) -> bytes:
        if not isinstance(val, bytes):
            raise TypeError(
                f"`{self.canonical_form}` must correspond to a bytestring, "
                f"got {type(val).__name__}"
            )
        if self._size is not None and len(val) != self._size:
            raise ValueError(f"Expected {self._size} bytes, got {len(val)}")
        return val

    def _normalize(self, val: Any) -> bytes:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> bytes:
        return self._check_val(val)


class AddressType(Type):
    """
    ``address``.
    Not to be confused with :py:class:`~ethereum_rpc.Address` which represents an address value.
    """

    @property
    def canonical_form(self) -> str:
        return "address"

    def _normalize(self, val: Any) -> bytes:
        if not isinstance(val, Address):
            raise TypeError(
                f"`address` must correspond to an `Address`-type value, got {type(val).__name__}"
            )
        return bytes(val)

    def _denormalize(self, val: Any) -> Address:
        # `eth_abi` returns checksummed hex strings
        return Address.from_hex(val)


class _Simple(Type):
    _name: str
    _python_type: type

    @property
    def canonical_form(self) -> str:
        return self._name

    def _check_val(self, val: Any) -> Any:
        if not isinstance(val, self._python_type):
            raise TypeError(
                f"`{self._name}` must correspond to a `{self._python_type.__name__}`-type value, "
                f"got {type(val).__name__}"
            )
        return val

    def _normalize(self, val: Any) -> Any:
        return self._check_val(val)

    def _denormalize(self, val: Any) -> Any:
        return self._check_val(val)


class String(_Simple):
    """``string``"""

    _name = "string"
    _python_type = str


class Bool(_Simple):
    """``bool``"""

    _name = "bool"
    _python_type = bool


class Array(Type):
    """A fixed-size (``<element>[<size>]``) or a dynamic (``<element>[]``) array."""

    def __init__(self, element_type: Type, size: None | int = None):
        self._element_type = element_type
        self._size = size

    @cached_property
    def canonical_form(self) -> str:
        return self._element_type.canonical_form + self._suffix

    @property
    def _suffix(self) -> str:
        return "[" + (str(self._size) if self._size is not None else "") + "]"

    def _check_val(self, val: Any) -> list[Any]:
        if isinstance(val, str | bytes) or not isinstance(val, Iterable):
            raise TypeError(f"Expected an iterable, got {type(val).__name__}")
        items = list(val)
        if self._size is not None and len(items) != self._size:
            raise ValueError(f"Expected {self._size} elements, got {len(items)}")
        return items

    def _normalize(self, val: Any) -> list[Any]:
        return [
            self._element_type._normalize(item)  # noqa: SLF001
            for item in self._check_val(val)
        ]

    def _denormalize(self, val: Any) -> list[Any]:
        return [
            self._element_type._denormalize(item)  # noqa: SLF001
            for item in self._check_val(val)
        ]

    def __str__(self) -> str:
        return str(self._element_type) + self._suffix


class Struct(Type):
    """A Solidity struct (``tuple`` in JSON ABI); decoded into a ``dict``."""

    def __init__(self, fields: Mapping[str, Type]):
        self._fields = dict(fields)

    @cached_property
    def canonical_form(self) -> str:
        return "(" + ",".join(field.canonical_form for field in self._fields.values()) + ")"

    def _check_val(self, val: Any) -> list[Any]:
        if isinstance(val, Mapping):
            if list(val) != list(self._fields):
                raise ValueError(f"Expected fields {list(self._fields)}, got {list(val)}")
            return [val[name] for name in self._fields]
        if not isinstance(val, Iterable):
            raise TypeError(f"Expected an iterable, got {type(val).__name__}")
        items = list(val)
        if len(items) != len(self._fields):
            raise ValueError(f"Expected {len(self._fields)} elements, got {len(items)}")
        return items

    def _normalize(self, val: Any) -> list[Any]:
        return [
            tp._normalize(item)  # noqa: SLF001
            for item, tp in zip(self._check_val(val), self._fields.values(), strict=True)
        ]

    def _denormalize(self, val: Any) -> dict[str, Any]:
        return {
            name: tp._denormalize(item)  # noqa: SLF001
            for item, (name, tp) in zip(self._check_val(val), self._fields.items(), strict=True)
        }

    def __str__(self) -> str:
        return "(" + ", ".join(f"{tp} {name}" for name, tp in self._fields.items()) + ")"


_INTEGER_RE = re.compile(r"^(u?)int(\d+)?$")
_BYTES_RE = re.compile(r"^bytes(\d+)?$")
_ARRAY_RE = re.compile(r"^(.+)\[(\d+)?\]$")

_NO_PARAMS: dict[str, Type] = {
    "address": AddressType(),
    "string": String(),
    "bool": Bool(),
}


def type_from_abi_string(abi_string: str) -> Type:
    """Returns the type object for a non-array, non-tuple ABI type string."""
    if match := _INTEGER_RE.match(abi_string):
        # `uint` and `int` are aliases of `uint256` and `int256`
        unsigned, bits = match.groups()
        integer_type = UInt if unsigned else Int
        return integer_type(int(bits) if bits else 256)
    if match := _BYTES_RE.match(abi_string):
        size = match.group(1)
        return Bytes(int(size) if size else None)
    if abi_string in _NO_PARAMS:
        return _NO_PARAMS[abi_string]
    raise ValueError(f"Unknown type: {abi_string}")


def dispatch_type(abi_entry: Mapping[str, Any]) -> Type:
    """Creates a type object from a JSON ABI parameter entry (with ``type`` and ``components``)."""
    type_str = abi_entry["type"]
    if not isinstance(type_str, str):
        raise ValueError(f"Incorrect type format: {type_str}")

    if match := _ARRAY_RE.match(type_str):
        # The last brackets correspond to the outermost array
        element_entry = dict(abi_entry, type=match.group(1))
        array_size = match.group(2)
        return Array(dispatch_type(element_entry), int(array_size) if array_size else None)

    if type_str == "tuple":
        return Struct(
            {component["name"]: dispatch_type(component) for component in abi_entry["components"]}
        )

    return type_from_abi_string(type_str)


def dispatch_parameter_types(
    abi_entry: Iterable[Mapping[str, Any]],
) -> list[tuple[str | None, Type]]:
    """
    Creates a list of (name, type) pairs from a JSON ABI parameter list.
    Empty names are converted to ``None``.
    """
    entries = list(abi_entry)
    names = [entry.get("name") or None for entry in entries]
    named = [name for name in names if name is not None]
    if len(named) != len(set(named)):
        raise ValueError("All named ABI parameters must have distinct names")
    return [(name, dispatch_type(entry)) for name, entry in zip(names, entries, strict=True)]


def encode_args(*types_and_args: tuple[Type, Any]) -> bytes:
    """Encodes the given values according to the paired types."""
    canonical_types = [tp.canonical_form for tp, _arg in types_and_args]
    normalized = [tp._normalize(arg) for tp, arg in types_and_args]  # noqa: SLF001
    try:
        return encode(canonical_types, normalized)
    except EncodingError as exc:
        raise ValueError(f"Could not encode the values: {exc}") from exc


def decode_args(types: Iterable[Type], data: bytes) -> tuple[Any, ...]:
    """Decodes a packed bytestring into a tuple of values according to the given types."""
    types = list(types)
    canonical_types = [tp.canonical_form for tp in types]
    try:
        values = decode(canonical_types, data)
    except DecodingError as exc:
        signature = "(" + ",".join(canonical_types) + ")"
        raise ABIDecodingError(
            f"Could not decode the return value with the expected signature {signature}: {exc}"
        ) from exc
    return tuple(
        tp._denormalize(value)  # noqa: SLF001
        for tp, value in zip(types, values, strict=True)
    )
