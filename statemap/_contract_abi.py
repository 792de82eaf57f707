from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any, cast

from ethereum_rpc import keccak

from ._abi_types import ABI_JSON, Type, decode_args, dispatch_parameter_types, encode_args

# The number of bytes in a function selector.
SELECTOR_LENGTH = 4


class EntryKind(Enum):
    """Possible kinds of a JSON ABI entry."""

    FUNCTION = "function"
    """A regular contract method."""
    CONSTRUCTOR = "constructor"
    """The contract constructor."""
    EVENT = "event"
    """An event that can be emitted by the contract."""
    ERROR = "error"
    """A custom error that can be raised by the contract."""
    FALLBACK = "fallback"
    """The fallback method."""
    RECEIVE = "receive"
    """The receive method."""

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "EntryKind":
        # Per the Solidity ABI docs, `type` can be omitted, defaulting to "function".
        if entry is None:
            return cls.FUNCTION
        try:
            return cls(entry)
        except ValueError as exc:
            raise ValueError(f"Unknown ABI entry type: {entry}") from exc


class Mutability(Enum):
    """Possible states of a contract's method mutability."""

    PURE = "pure"
    """Solidity's ``pure`` (does not read or write the contract state)."""
    VIEW = "view"
    """Solidity's ``view`` (may read the contract state)."""
    NONPAYABLE = "nonpayable"
    """Solidity's ``nonpayable`` (may write the contract state)."""
    PAYABLE = "payable"
    """
    Solidity's ``payable`` (may write the contract state
    and accept associated funds with transactions).
    """

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "Mutability":
        try:
            return cls(entry)
        except ValueError as exc:
            raise ValueError(f"Unknown mutability identifier: {entry}") from exc

    @classmethod
    def from_entry(cls, entry: Mapping[str, Any]) -> "Mutability":
        """
        Reads the mutability of a method from its JSON ABI entry.

        Compilers before Solidity 0.4.16 did not emit ``stateMutability``,
        using the ``constant`` and ``payable`` flags instead.
        """
        if "stateMutability" in entry:
            return cls.from_json(entry["stateMutability"])
        if entry.get("constant"):
            return cls.VIEW
        if entry.get("payable"):
            return cls.PAYABLE
        return cls.NONPAYABLE

    @property
    def mutating(self) -> bool:
        return self in {Mutability.PAYABLE, Mutability.NONPAYABLE}


class Fields:
    """
    Describes a sequence of optionally named typed values.
    These can be method parameters, method outputs, error fields,
    or event fields.

    Types are parsed from the JSON ABI on first use, so declarations
    with types that cannot be decoded here can still be loaded.
    """

    names: tuple[str | None, ...]
    """Field names."""

    declared_types: tuple[str, ...]
    """Field types exactly as they are declared in the JSON ABI (e.g. ``uint`` or ``tuple``)."""

    @classmethod
    def from_json(cls, fields_entry: ABI_JSON) -> "Fields":
        """Creates this object from a list of JSON ABI parameters."""
        if fields_entry is None:
            return cls([])
        if not isinstance(fields_entry, Sequence) or isinstance(fields_entry, str):
            raise ValueError(f"ABI parameters must be a list, got: {fields_entry}")
        for param in fields_entry:
            if not isinstance(param, Mapping) or not isinstance(param.get("type"), str):
                raise ValueError(f"ABI parameter must be a dictionary with a `type`, got: {param}")
        return cls(cast("Sequence[Mapping[str, Any]]", fields_entry))

    def __init__(self, params: Iterable[Mapping[str, Any]]):
        self._params = tuple(params)
        self.names = tuple(param.get("name") or None for param in self._params)
        self.declared_types = tuple(param["type"] for param in self._params)

    @cached_property
    def types(self) -> tuple[Type, ...]:
        """Field types. Raises ``ValueError`` if some of them are not supported."""
        return tuple(tp for _name, tp in dispatch_parameter_types(self._params))

    @cached_property
    def canonical_form(self) -> str:
        """Returns the field types serialized in the canonical form as a string."""
        return "(" + ",".join(tp.canonical_form for tp in self.types) + ")"

    def encode(self, values: Iterable[Any]) -> bytes:
        """Encodes the given position values into bytes according to field types."""
        return encode_args(*zip(self.types, values, strict=True))

    def decode(self, value_bytes: bytes) -> list[tuple[str | None, Any]]:
        """
        Decodes the packed bytestring into a list of pairs
        of the original parameter/field name and the value.
        """
        return list(zip(self.names, decode_args(self.types, value_bytes), strict=True))

    def __len__(self) -> int:
        return len(self._params)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Fields) and self._params == other._params

    def __hash__(self) -> int:
        return hash((self.names, self.declared_types))

    def __str__(self) -> str:
        fields = ", ".join(
            tp + ((" " + name) if name is not None else "")
            for name, tp in zip(self.names, self.declared_types, strict=True)
        )
        return f"({fields})"


def _no_fields() -> Fields:
    return Fields([])


@dataclass(frozen=True)
class AbiEntry:
    """
    A single member of a contract interface.

    Only the information needed to classify the entry and to call it without arguments
    is retained; events and errors are kept as declarations only.
    """

    kind: EntryKind
    """The kind of this entry."""

    name: None | str = None
    """The name of this entry (``None`` for constructors, fallback and receive methods)."""

    inputs: Fields = field(default_factory=_no_fields)
    """The input parameters (or the fields of an event or an error)."""

    outputs: Fields = field(default_factory=_no_fields)
    """The output parameters (empty for anything but functions)."""

    mutability: None | Mutability = None
    """The state mutability (``None`` for events and errors)."""

    @classmethod
    def from_json(cls, entry: ABI_JSON) -> "AbiEntry":
        """
        Creates this object from a JSON ABI entry.

        Output types are checked for accessors only (see :py:attr:`is_accessor`),
        since nothing else is ever called.
        """
        if not isinstance(entry, Mapping):
            raise ValueError(f"ABI entry must be a dictionary, got: {entry}")
        entry_typed = cast("Mapping[str, Any]", entry)

        kind = EntryKind.from_json(entry_typed.get("type"))

        name = entry_typed.get("name")
        if kind in (EntryKind.FUNCTION, EntryKind.EVENT, EntryKind.ERROR):
            if not isinstance(name, str) or not name:
                raise ValueError(f"ABI entry of type `{kind.value}` must have a name")
        else:
            name = None

        mutability: None | Mutability
        if kind in (EntryKind.EVENT, EntryKind.ERROR):
            mutability = None
        else:
            mutability = Mutability.from_entry(entry_typed)

        inputs = Fields.from_json(entry_typed.get("inputs"))
        if kind == EntryKind.FUNCTION:
            outputs = Fields.from_json(entry_typed.get("outputs"))
        else:
            outputs = Fields([])

        abi_entry = cls(kind, name=name, inputs=inputs, outputs=outputs, mutability=mutability)
        if abi_entry.is_accessor:
            _ = abi_entry.outputs.types
        return abi_entry

    @property
    def is_accessor(self) -> bool:
        """
        ``True`` if this is a regular method that does not modify the state
        and can be called without arguments.
        """
        return (
            self.kind == EntryKind.FUNCTION
            and self.mutability is not None
            and not self.mutability.mutating
            and len(self.inputs) == 0
        )

    @cached_property
    def signature(self) -> str:
        """The method signature used to derive its selector, e.g. ``balanceOf(address)``."""
        if self.name is None:
            raise ValueError(f"An ABI entry of type `{self.kind.value}` does not have a signature")
        return self.name + self.inputs.canonical_form

    @cached_property
    def selector(self) -> bytes:
        """Method's selector."""
        return keccak(self.signature.encode())[:SELECTOR_LENGTH]

    @property
    def output_type(self) -> str:
        """
        The declared ABI type of the method output: the type string of the single output,
        or the declared types of all of them in parentheses if there are several.
        """
        if len(self.outputs) == 1:
            return self.outputs.declared_types[0]
        return "(" + ",".join(self.outputs.declared_types) + ")"

    def decode_output(self, output_bytes: bytes) -> Any:
        """
        Decodes the output from ABI-packed bytes.

        If there is only a single output, its value is returned.
        If there are no outputs, ``None`` is returned.
        If all the fields in the output are named, it is returned as a ``dict``,
        otherwise as a tuple of values.
        """
        results = self.outputs.decode(output_bytes)

        if len(results) == 0:
            return None
        if len(results) == 1:
            return results[0][1]
        if all(name is not None for name in self.outputs.names):
            return dict(results)
        return tuple(value for _name, value in results)

    def __str__(self) -> str:
        name = self.name if self.name is not None else ""
        mutability = f" {self.mutability.value}" if self.mutability is not None else ""
        returns = f" returns {self.outputs}" if len(self.outputs) else ""
        return f"{self.kind.value} {name}{self.inputs}{mutability}{returns}"

    def __repr__(self) -> str:
        return f"AbiEntry({self})"


class ContractDescriptor:
    """A named contract interface: the ordered list of its ABI entries."""

    name: str
    """The name of the contract."""

    entries: tuple[AbiEntry, ...]
    """ABI entries in the declaration order."""

    @classmethod
    def from_json(cls, name: str, json_abi: ABI_JSON) -> "ContractDescriptor":
        """Creates this object from a JSON ABI (e.g. generated by a Solidity compiler)."""
        if not isinstance(json_abi, Sequence) or isinstance(json_abi, str):
            raise ValueError(f"JSON ABI of `{name}` must be a list of entries")

        entries = []
        for position, entry in enumerate(json_abi):
            try:
                entries.append(AbiEntry.from_json(entry))
            except (ValueError, KeyError, TypeError) as exc:
                message = f"Invalid entry #{position} in the ABI of `{name}`: {exc}"
                raise ValueError(message) from exc

        return cls(name, entries)

    def __init__(self, name: str, entries: Iterable[AbiEntry]):
        self.name = name
        self.entries = tuple(entries)

    def __iter__(self) -> Iterator[AbiEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"ContractDescriptor({self.name!r}, <{len(self.entries)} entries>)"
