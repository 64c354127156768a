import re
from typing import AbstractSet, Optional

from web3_query.exceptions import ValidationError
from web3_query.models import ChainClass, Endpoint

DEFAULT_CHAIN = "0x1"

# Chain name -> canonical hex chain id
CHAIN_HEX_MAP = {
    "eth": "0x1",
    "ethereum": "0x1",
    "goerli": "0x5",
    "sepolia": "0xaa36a7",
    "polygon": "0x89",
    "mumbai": "0x13881",
    "bsc": "0x38",
    "bsc_testnet": "0x61",
    "avalanche": "0xa86a",
    "fuji": "0xa869",
    "fantom": "0xfa",
    "arbitrum": "0xa4b1",
    "arbitrum_testnet": "0x66eee",
    "optimism": "0xa",
    "optimism_testnet": "0x45",
    "base": "0x2105",
    "base_testnet": "0x14a34",
    "celo": "0xa4ec",
    "gnosis": "0x64",
    "moonbeam": "0x504",
    "moonriver": "0x505",
    "cronos": "0x19",
    "aurora": "0x4e454152",
    "polygon_zkevm": "0x144",
    "amoy": "0x13882",
    "zkevm": "0x144",
    "linea": "0x770e",
    "linea_testnet": "0xe708",
    "scroll": "0x82750",
    "scroll_testnet": "0x8274f",
    "blast": "0x81457",
    "blast_testnet": "0x24c931",
    "manta": "0xa9b4",
    "manta_testnet": "0x5e02",
    "taiko": "0x50e8",
    "taiko_testnet": "0x50e3",
    "world": "0x1e12",
    "world_testnet": "0x1e14",
    # Solana tags are not hex and pass through as-is
    "sol": "sol",
    "solana": "sol",
    "mainnet": "mainnet",
    "devnet": "devnet",
}

SOLANA_ALIASES = frozenset({"sol", "solana", "mainnet", "devnet"})

EVM_SUPPORTED_CHAIN_IDS = frozenset(
    hex_id for name, hex_id in CHAIN_HEX_MAP.items() if name not in SOLANA_ALIASES
)

EVM_MAINNET_CHAIN_IDS = frozenset(
    {
        "0x1",  # Ethereum
        "0x89",  # Polygon
        "0x38",  # BSC
        "0xa86a",  # Avalanche
        "0xfa",  # Fantom
        "0xa4b1",  # Arbitrum
        "0xa",  # Optimism
        "0x2105",  # Base
        "0xa4ec",  # Celo
        "0x64",  # Gnosis
        "0x504",  # Moonbeam
        "0x505",  # Moonriver
        "0x19",  # Cronos
        "0x4e454152",  # Aurora
        "0x144",  # Polygon zkEVM
        "0x770e",  # Linea
        "0x82750",  # Scroll
        "0x81457",  # Blast
        "0xa9b4",  # Manta
        "0x50e8",  # Taiko
        "0x1e12",  # World
    }
)

# Chains with token price support
EVM_TOKEN_PRICE_CHAIN_IDS = frozenset(
    {
        "0x1",
        "0x89",
        "0x38",
        "0xa86a",
        "0xa4b1",
        "0xa",
        "0x2105",
        "0x64",
        "0x504",
        "0x770e",
        "0x82750",
        "0x81457",
        "0xa9b4",
        "0x50e8",
        "0x1e12",
    }
)

_WALLET_HISTORY_PATTERN = re.compile(r"^/wallets/(:address|\{address\}|[^/]+)/history\b")
_WALLET_TOKENS_PATTERN = re.compile(r"^/wallets/(:address|\{address\}|[^/]+)/tokens\b")


def resolve(chain: Optional[str]) -> str:
    """
    Convert a chain name to its hex chain id.

    Args:
        chain (Optional[str]): Chain name ("eth", "polygon") or an id ("0x1").

    Returns:
        str: The hex id for known names, the input unchanged for unknown values,
             and Ethereum mainnet when nothing is given.
    """
    if not chain:
        return DEFAULT_CHAIN
    return CHAIN_HEX_MAP.get(chain.lower(), chain)


def assert_supported(
    chain_id: str,
    endpoint: str,
    allowed: AbstractSet[str],
    message: Optional[str] = None,
) -> None:
    """
    Fail when `chain_id` is not part of `allowed`.

    Raises:
        ValidationError: Listing the accepted chain ids unless `message` is given.
    """
    if chain_id in allowed:
        return
    raise ValidationError(
        message
        or (
            f'Unsupported chain "{chain_id}" for endpoint {endpoint}. '
            f"Supported chain IDs: {', '.join(sorted(allowed))}"
        )
    )


def classify(endpoint: Endpoint) -> Optional[ChainClass]:
    """Return the chain restriction of an endpoint, explicit metadata first."""
    if endpoint.chain_class is not None:
        return endpoint.chain_class
    if _WALLET_HISTORY_PATTERN.search(endpoint.path):
        return "mainnet"
    if _WALLET_TOKENS_PATTERN.search(endpoint.path):
        return "token_price"
    return None


def validate_evm_chain(chain_id: str, endpoint: Endpoint) -> None:
    """Run every chain check that applies to an EVM endpoint."""
    assert_supported(chain_id, endpoint.path, EVM_SUPPORTED_CHAIN_IDS)

    chain_class = classify(endpoint)
    if chain_class == "mainnet":
        assert_supported(
            chain_id,
            endpoint.path,
            EVM_MAINNET_CHAIN_IDS,
            f"Endpoint {endpoint.path} only supports mainnet chains.",
        )
    elif chain_class == "token_price":
        assert_supported(
            chain_id,
            endpoint.path,
            EVM_TOKEN_PRICE_CHAIN_IDS,
            f"Endpoint {endpoint.path} requires token price support (mainnet-only).",
        )
