import re
from typing import Optional

from eth_utils import is_hex_address

from web3_query import chains
from web3_query.exceptions import ValidationError
from web3_query.models import BlockchainContext

EVM_PREFIX = "0x"
EVM_ADDRESS_LENGTH = 42
SOLANA_MIN_LENGTH = 32

_BASE58_PATTERN = re.compile(r"^[1-9A-HJ-NP-Za-km-z]+$")
_UNSAFE_CHARACTERS = re.compile(r"[;&|`$()]")


def sanitize_context_value(value: Optional[str], name: str) -> Optional[str]:
    """
    Validate a chain or network hint supplied by the caller.

    Args:
        value (Optional[str]): The raw hint.
        name (str): Option name, used in the error message.

    Returns:
        Optional[str]: The trimmed value, or None when no hint was given.

    Raises:
        ValidationError: If the value is not a string, is blank or contains
                         shell metacharacters.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"Invalid {name} parameter: expected a string")
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"Invalid {name} parameter: value is empty")
    if _UNSAFE_CHARACTERS.search(trimmed):
        raise ValidationError(f"Invalid {name} parameter: contains unsafe characters")
    return trimmed


def _solana_network(chain: Optional[str], network: Optional[str]) -> str:
    if network:
        return network
    if chain and chain.lower() in ("mainnet", "devnet"):
        return chain.lower()
    return "mainnet"


def detect_blockchain(
    address: Optional[str] = None,
    chain: Optional[str] = None,
    network: Optional[str] = None,
) -> BlockchainContext:
    """
    Classify a request as EVM or Solana from the address shape and hints.

    Args:
        address (Optional[str]): Wallet or token address.
        chain (Optional[str]): Chain name or id hint.
        network (Optional[str]): Solana network hint.

    Returns:
        BlockchainContext: The detected network family.

    Raises:
        ValidationError: If the address does not match the alphabet of the
                         detected family or a hint is unsafe.
    """
    chain = sanitize_context_value(chain, "chain")
    network = sanitize_context_value(network, "network")

    if address and not address.startswith(EVM_PREFIX) and len(address) >= SOLANA_MIN_LENGTH:
        if not _BASE58_PATTERN.match(address):
            raise ValidationError(f"Invalid Solana address: {address}")
        return BlockchainContext(type="solana", network=_solana_network(chain, network))

    if address and address.startswith(EVM_PREFIX) and len(address) == EVM_ADDRESS_LENGTH:
        if not is_hex_address(address):
            raise ValidationError(f"Invalid EVM address: {address}")
        return BlockchainContext(type="evm", chain=chains.resolve(chain))

    hint = chain or network
    if hint:
        if hint.lower() in chains.SOLANA_ALIASES:
            return BlockchainContext(type="solana", network=_solana_network(chain, network))
        return BlockchainContext(type="evm", chain=chains.resolve(chain))

    return BlockchainContext(type="evm", chain=chains.DEFAULT_CHAIN)
