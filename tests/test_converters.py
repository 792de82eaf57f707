import pytest
from ethereum_rpc import Address

from statemap import (
    DEFAULT_CONVERTERS,
    AbiEntry,
    ConverterRegistry,
    EntryKind,
    Fields,
    Mutability,
)


def make_entry(*output_types, names=None):
    names = names or [""] * len(output_types)
    outputs = Fields(
        {"name": name, "type": type_name}
        for name, type_name in zip(names, output_types, strict=True)
    )
    return AbiEntry(EntryKind.FUNCTION, name="x", outputs=outputs, mutability=Mutability.VIEW)


def test_defaults():
    registry = ConverterRegistry()
    assert registry.convert("uint256", 123) == "123"
    assert registry.convert("uint64", 2**64 - 1) == str(2**64 - 1)
    assert registry.convert("int128", -5) == "-5"
    assert registry.convert("uint", 7) == "7"
    assert registry.convert("int", -7) == "-7"

    # Small integers fit into a float and are kept as is
    assert registry.convert("uint8", 1) == 1
    assert registry.convert("int32", -1) == -1

    address = Address.from_hex("0x" + "cd" * 20)
    assert registry.convert("address", address) == address.checksum

    assert registry.convert("bytes32", b"\x01" * 32) == b"\x01" * 32
    assert registry.convert("string", "Coin") == "Coin"
    assert registry.convert("bool", True) is True


def test_user_converters_take_precedence():
    registry = ConverterRegistry({"uint256": lambda x: x * 2})
    assert registry.convert("uint256", 123) == 246
    # Other defaults are still there
    assert registry.convert("uint128", 123) == "123"
    assert registry.types.keys() == {"uint256"}


def test_exact_type_lookup():
    # No matching by type family
    registry = ConverterRegistry({"uint": lambda _: "uint"})
    assert registry.convert("uint", 1) == "uint"
    assert registry.convert("uint256", 1) == "1"
    assert registry.convert("uint16", 1) == 1

    registry = ConverterRegistry({"bytes": bytes.hex})
    assert registry.convert("bytes", b"\x01") == "01"
    assert registry.convert("bytes32", b"\x01") == b"\x01"


def test_custom_defaults():
    registry = ConverterRegistry(defaults={})
    assert registry.convert("uint256", 123) == 123

    assert set(DEFAULT_CONVERTERS) >= {"uint64", "uint256", "int64", "int256", "address"}
    assert "uint56" not in DEFAULT_CONVERTERS


def test_invalid_converters():
    with pytest.raises(TypeError, match="The converter for `uint256` must be callable"):
        ConverterRegistry({"uint256": "str"})

    with pytest.raises(TypeError, match="Type names must be strings, got int"):
        ConverterRegistry({256: str})


def test_convert_output():
    registry = ConverterRegistry()

    assert registry.convert_output(make_entry(), None) is None
    assert registry.convert_output(make_entry("uint256"), 5) == "5"

    address = Address.from_hex("0x" + "cd" * 20)

    # Several outputs are converted element by element
    unnamed = make_entry("uint256", "address", "bytes1")
    assert registry.convert_output(unnamed, (5, address, b"\x00")) == (
        "5",
        address.checksum,
        b"\x00",
    )

    named = make_entry("uint256", "string", names=["supply", "label"])
    assert registry.convert_output(named, {"supply": 5, "label": "x"}) == {
        "supply": "5",
        "label": "x",
    }


def test_convert_output_by_declared_type():
    # `int` is decoded as `int256`, but converters are looked up by the declared name
    registry = ConverterRegistry({"int": lambda x: ("int", x)})
    assert registry.convert_output(make_entry("int"), 5) == ("int", 5)
    assert registry.convert_output(make_entry("int256"), 5) == "5"

    registry = ConverterRegistry({"int256": lambda x: ("int256", x)})
    assert registry.convert_output(make_entry("int"), 5) == "5"
    assert registry.convert_output(make_entry("int256"), 5) == ("int256", 5)

    registry = ConverterRegistry({"uint": hex})
    assert registry.convert_output(make_entry("uint", "uint256"), (16, 16)) == ("0x10", "16")
