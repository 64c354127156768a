"""Shared fixtures for the query client tests."""

from typing import Any, Callable, Optional

import pytest

from _fakes import EVM_ADDRESS, SOLANA_ADDRESS, FakeSession
from web3_query.query_client import QueryClient


@pytest.fixture
def evm_address() -> str:
    return EVM_ADDRESS


@pytest.fixture
def solana_address() -> str:
    return SOLANA_ADDRESS


@pytest.fixture
def make_client() -> Callable[..., QueryClient]:
    """Build a client bound to a fake session with fast backoff."""

    def factory(session: Optional[FakeSession] = None, **kwargs: Any) -> QueryClient:
        kwargs.setdefault("backoff_initial", 0.001)
        kwargs.setdefault("backoff_max", 0.01)
        return QueryClient(api_key="test-key", session=session or FakeSession(), **kwargs)

    return factory
