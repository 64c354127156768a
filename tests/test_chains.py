import pytest

from web3_query import chains
from web3_query.exceptions import ValidationError
from web3_query.models import Endpoint


@pytest.mark.parametrize("name, expected", sorted(chains.CHAIN_HEX_MAP.items()))
def test_resolve_known_names(name: str, expected: str) -> None:
    assert chains.resolve(name) == expected


def test_resolve_is_case_insensitive() -> None:
    assert chains.resolve("Polygon") == "0x89"
    assert chains.resolve("BSC") == "0x38"


@pytest.mark.parametrize("value", ["0x1", "0x2105", "unknownchain", "0xdeadbeef"])
def test_resolve_passes_unknown_values_through(value: str) -> None:
    assert chains.resolve(value) == value


@pytest.mark.parametrize("value", [None, ""])
def test_resolve_defaults_to_ethereum(value) -> None:
    assert chains.resolve(value) == "0x1"


def test_supported_set_excludes_solana_tags() -> None:
    assert "sol" not in chains.EVM_SUPPORTED_CHAIN_IDS
    assert "mainnet" not in chains.EVM_SUPPORTED_CHAIN_IDS
    assert chains.EVM_MAINNET_CHAIN_IDS <= chains.EVM_SUPPORTED_CHAIN_IDS
    assert chains.EVM_TOKEN_PRICE_CHAIN_IDS <= chains.EVM_MAINNET_CHAIN_IDS


def test_assert_supported_lists_allowed_chains() -> None:
    with pytest.raises(ValidationError) as excinfo:
        chains.assert_supported("0x999", "/x", frozenset({"0x1", "0x89"}))
    message = str(excinfo.value)
    assert '"0x999"' in message
    assert "0x1" in message and "0x89" in message


def test_assert_supported_custom_message() -> None:
    with pytest.raises(ValidationError, match="mainnet only"):
        chains.assert_supported("0x5", "/x", chains.EVM_MAINNET_CHAIN_IDS, "mainnet only")


def test_assert_supported_accepts_member() -> None:
    chains.assert_supported("0x1", "/x", chains.EVM_SUPPORTED_CHAIN_IDS)


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/wallets/:address/history", "mainnet"),
        ("/wallets/0xabc/history", "mainnet"),
        ("/wallets/{address}/history", "mainnet"),
        ("/wallets/:address/tokens", "token_price"),
        ("/wallets/:address/tokens/extra", "token_price"),
        ("/wallets/:address/tokensx", None),
        ("/:address/balance", None),
        ("/wallets/:address/net-worth", None),
    ],
)
def test_classify_by_path(path: str, expected) -> None:
    assert chains.classify(Endpoint(path=path)) == expected


def test_classify_prefers_explicit_metadata() -> None:
    endpoint = Endpoint(path="/:address/balance", chain_class="mainnet")
    assert chains.classify(endpoint) == "mainnet"


def test_validate_history_rejects_testnet() -> None:
    with pytest.raises(ValidationError, match="only supports mainnet"):
        chains.validate_evm_chain("0xaa36a7", Endpoint(path="/wallets/:address/history"))


def test_validate_tokens_rejects_chain_without_prices() -> None:
    # Fantom is a mainnet without token price support
    with pytest.raises(ValidationError, match="token price support"):
        chains.validate_evm_chain("0xfa", Endpoint(path="/wallets/:address/tokens"))


def test_validate_rejects_unknown_chain() -> None:
    with pytest.raises(ValidationError, match="Unsupported chain"):
        chains.validate_evm_chain("0x12345", Endpoint(path="/:address/balance"))
