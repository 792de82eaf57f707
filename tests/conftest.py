import pytest
from ethereum_rpc import Address
from mock_provider import MockProvider
from sample_abi import TOKEN_ABI

from statemap import ContractDescriptor


@pytest.fixture
def anyio_backend() -> str:
    return "trio"


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def contract_address() -> Address:
    return Address.from_hex("0x" + "ab" * 20)


@pytest.fixture
def token_descriptor() -> ContractDescriptor:
    return ContractDescriptor.from_json("Token", TOKEN_ABI)
