# web3_query/models.py
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, NonNegativeInt

from web3_query.utils.custom_types import BlockNumber

ChainClass = Literal["mainnet", "token_price"]


class BlockchainContext(BaseModel):
    """
    Network family detected for a single query.

    Attributes:
        type (str): Either "evm" or "solana".
        chain (Optional[str]): Canonical hex chain id, populated for EVM.
        network (Optional[str]): Solana network name, populated for Solana.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["evm", "solana"]
    chain: Optional[str] = None
    network: Optional[str] = None


class Endpoint(BaseModel):
    """
    Logical API operation.

    Attributes:
        path (str): Path template with `:name` or `{name}` placeholders.
        method (str): HTTP method used when the caller does not override it.
        chain_class (Optional[str]): Restricts the chains accepted by the endpoint.
            When unset the class is derived from the path shape.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    method: str = "GET"
    chain_class: Optional[ChainClass] = None


class RequestEnvelope(BaseModel):
    """Fully resolved outbound request."""

    url: str
    method: str = "GET"
    headers: Dict[str, str]
    body: Optional[Any] = None


class DateToBlock(BaseModel):
    """Response of the date to block lookup."""

    model_config = ConfigDict(extra="allow")

    block: BlockNumber
    date: Optional[str] = None
    timestamp: Optional[int] = None


class Metrics(BaseModel):
    """
    Request counters.

    Counters only ever grow. `snapshot` hands out a copy so callers cannot
    alter the live values.
    """

    requests: NonNegativeInt = 0
    errors: NonNegativeInt = 0
    timeouts: NonNegativeInt = 0
    rate_limits: NonNegativeInt = 0

    def increment(self, counter: str) -> None:
        setattr(self, counter, getattr(self, counter) + 1)

    def snapshot(self) -> Dict[str, int]:
        return self.model_dump()
