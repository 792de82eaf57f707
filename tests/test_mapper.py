import dataclasses
import json

import pytest
from ethereum_rpc import Address, ErrorCode, RPCError
from mock_provider import MockProvider, Raise, Stall

from statemap import (
    ConfigurationError,
    ContractDescriptor,
    ContractLoadingError,
    ContractPanic,
    InvalidAddress,
    Mapper,
    ProviderError,
    Stage,
    TransformedKey,
    UnknownContract,
)
from statemap._abi_types import UInt, encode_args

pytestmark = pytest.mark.anyio


STATES = ["Pending", "Active", "Closed"]

STATUS_ABI = [
    {
        "type": "function",
        "name": "name",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
    {
        "type": "function",
        "name": "state",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "type": "function",
        "name": "activate",
        "stateMutability": "nonpayable",
        "inputs": [],
        "outputs": [],
    },
]

STATE_MAPPING = {"state": [{"key": "stateName", "transform": STATES.__getitem__}, "state"]}

ADDRESS = "0x" + "ab" * 20


@pytest.fixture
def status_provider():
    provider = MockProvider()
    descriptor = ContractDescriptor.from_json("Status", STATUS_ABI)
    provider.deploy(Address.from_hex(ADDRESS), descriptor, {"name": "Coin", "state": 1})
    return provider


async def test_map(status_provider):
    mapper = Mapper(
        provider=status_provider, contracts={"Status": STATUS_ABI}, mapping=STATE_MAPPING
    )

    result = await mapper.map("Status", ADDRESS)

    assert result == {"name": "Coin", "stateName": "Active", "state": 1}
    assert status_provider.calls == {"name": 1, "state": 1}


async def test_map_is_repeatable(status_provider):
    mapper = Mapper(
        provider=status_provider, contracts={"Status": STATUS_ABI}, mapping=STATE_MAPPING
    )

    first = await mapper.map("Status", ADDRESS)
    second = await mapper.map("Status", ADDRESS)

    assert first == second
    # Each `map()` call reads the contract anew
    assert status_provider.sessions_opened == 2
    assert status_provider.calls == {"name": 2, "state": 2}


async def test_address_forms(status_provider):
    mapper = Mapper(provider=status_provider, contracts={"Status": STATUS_ABI})
    expected = {"name": "Coin", "state": 1}

    assert await mapper.map("Status", ADDRESS.upper().replace("0X", "0x")) == expected
    assert await mapper.map("Status", ADDRESS[2:]) == expected
    assert await mapper.map("Status", Address.from_hex(ADDRESS)) == expected
    # A mixed-case string is accepted if its checksum is valid
    assert await mapper.map("Status", Address.from_hex(ADDRESS).checksum) == expected


async def test_validated_before_calls(status_provider):
    mapper = Mapper(provider=status_provider, contracts={"Status": STATUS_ABI})

    with pytest.raises(
        UnknownContract, match=r"Unknown contract `Token` \(known contracts: Status\)"
    ):
        await mapper.map("Token", ADDRESS)

    with pytest.raises(InvalidAddress, match="Invalid contract address 'not-an-address'"):
        await mapper.map("Status", "not-an-address")

    with pytest.raises(InvalidAddress, match="invalid address checksum"):
        await mapper.map("Status", "0x5aaeb6053F3E94C9b9A09f33669435E7Ef1BeAed")

    with pytest.raises(ConfigurationError, match="Invalid mapping rule for `state`"):
        await mapper.map("Status", ADDRESS, mapping={"state": 42})

    # All of the above are configuration errors
    assert issubclass(UnknownContract, ConfigurationError)
    assert issubclass(InvalidAddress, ConfigurationError)

    assert status_provider.sessions_opened == 0
    assert status_provider.requests == []


async def test_call_mapping_overrides_default(status_provider):
    mapper = Mapper(
        provider=status_provider, contracts={"Status": STATUS_ABI}, mapping=STATE_MAPPING
    )

    # An empty mapping replaces the default one
    assert await mapper.map("Status", ADDRESS, mapping={}) == {"name": "Coin", "state": 1}

    assert await mapper.map("Status", ADDRESS, mapping={"name": "title"}) == {
        "title": "Coin",
        "state": 1,
    }

    # The default mapping is not affected
    assert await mapper.map("Status", ADDRESS) == {
        "name": "Coin",
        "stateName": "Active",
        "state": 1,
    }


async def test_diagnostics():
    provider = MockProvider()
    mapper = Mapper(provider=provider, contracts={"Status": STATUS_ABI}, mapping=STATE_MAPPING)
    panic = RPCError(
        ErrorCode(3),
        "execution reverted",
        bytes.fromhex("4e487b71") + encode_args((UInt(256), 0x01)),
    )
    provider.deploy(
        Address.from_hex(ADDRESS),
        mapper.contracts["Status"],
        {"name": Raise(ProviderError(panic)), "state": 7},
    )

    result = await mapper.map_with_diagnostics("Status", ADDRESS)

    # The transform failed, but the verbatim copy is still there
    assert result.values == {"state": 7}
    assert [(failure.field, failure.stage) for failure in result.failures] == [
        ("name", Stage.CALL),
        ("stateName", Stage.TRANSFORM),
    ]
    assert isinstance(result.failures[0].error, ContractPanic)
    assert result.failures[0].error.reason == ContractPanic.Reason.ASSERTION

    # `map()` just omits the fields
    assert await mapper.map("Status", ADDRESS) == {"state": 7}


async def test_no_accessors(provider):
    mapper = Mapper(provider=provider, contracts={"Empty": [{"type": "receive"}]})
    assert mapper.accessors("Empty") == []
    assert await mapper.map("Empty", ADDRESS) == {}
    assert provider.requests == []


async def test_type_converters(status_provider):
    mapper = Mapper(
        provider=status_provider,
        contracts={"Status": STATUS_ABI},
        types={"uint8": STATES.__getitem__, "string": str.upper},
    )
    assert await mapper.map("Status", ADDRESS) == {"name": "COIN", "state": "Active"}


async def test_call_timeout():
    provider = MockProvider()
    mapper = Mapper(provider=provider, contracts={"Status": STATUS_ABI}, call_timeout=0.1)
    provider.deploy(
        Address.from_hex(ADDRESS), mapper.contracts["Status"], {"name": Stall(), "state": 2}
    )

    result = await mapper.map_with_diagnostics("Status", ADDRESS)

    assert result.values == {"state": 2}
    (failure,) = result.failures
    assert failure.field == "name"
    assert isinstance(failure.error, TimeoutError)


async def test_max_concurrency(status_provider):
    mapper = Mapper(provider=status_provider, contracts={"Status": STATUS_ABI}, max_concurrency=1)
    assert await mapper.map("Status", ADDRESS) == {"name": "Coin", "state": 1}
    assert status_provider.max_in_flight == 1

    with pytest.raises(ConfigurationError, match="`max_concurrency` must be a positive integer"):
        Mapper(provider=status_provider, contracts={}, max_concurrency=0)


async def test_networks(status_provider):
    other = MockProvider()
    networks = {"mainnet": other, "testnet": status_provider}

    mapper = Mapper(networks=networks, network_name="testnet", contracts={"Status": STATUS_ABI})
    assert await mapper.map("Status", ADDRESS) == {"name": "Coin", "state": 1}
    assert other.sessions_opened == 0

    # An explicit provider takes precedence
    mapper = Mapper(
        provider=status_provider,
        networks=networks,
        network_name="mainnet",
        contracts={"Status": STATUS_ABI},
    )
    assert mapper.config.resolve_provider() is status_provider

    with pytest.raises(
        ConfigurationError,
        match=r"Unknown network `devnet` \(known networks: mainnet, testnet\)",
    ):
        Mapper(networks=networks, network_name="devnet")

    with pytest.raises(ConfigurationError, match="Either `provider` or `network_name` must be"):
        Mapper(networks=networks)


def test_configuration_errors(provider):
    with pytest.raises(ConfigurationError, match="Invalid mapping rule for `state`"):
        Mapper(provider=provider, mapping={"state": {"key": "s", "transform": 1}})

    with pytest.raises(ConfigurationError, match="The converter for `uint8` must be callable"):
        Mapper(provider=provider, types={"uint8": "int"})

    with pytest.raises(ContractLoadingError):
        Mapper(provider=provider, contracts={"Bad": [{"type": "method"}]})


def test_config(provider):
    mapper = Mapper(
        provider=provider,
        contracts={"Status": STATUS_ABI},
        mapping={"name": {"key": "title", "transform": str.upper}},
        call_timeout=5,
    )
    config = mapper.config

    assert config.provider is provider
    assert config.call_timeout == 5
    assert config.max_concurrency is None
    assert config.mapping == {"name": TransformedKey("title", str.upper)}

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.call_timeout = 10  # type: ignore[misc]

    with pytest.raises(TypeError):
        config.mapping["state"] = TransformedKey("s")  # type: ignore[index]

    assert mapper.accessors("Status") == ["name", "state"]
    with pytest.raises(UnknownContract):
        mapper.accessors("Token")


async def test_contracts_from_files(tmp_path, status_provider):
    artifacts = tmp_path / "build"
    artifacts.mkdir()
    (artifacts / "Status.json").write_text(
        json.dumps({"contractName": "Status", "abi": STATUS_ABI}), encoding="utf-8"
    )

    mapper = Mapper(
        provider=status_provider,
        contracts="build/*.json",
        working_directory=tmp_path,
        mapping=STATE_MAPPING,
    )

    assert list(mapper.contracts) == ["Status"]
    assert await mapper.map("Status", ADDRESS) == {
        "name": "Coin",
        "stateName": "Active",
        "state": 1,
    }
