import asyncio
import random
from collections import Counter
from typing import Any, Dict

import pytest
from unittest.mock import AsyncMock, patch

from web3_query.exceptions import APIError, ValidationError

ITEMS = ["0x" + f"{i:040x}" for i in range(7)]


@pytest.mark.asyncio
async def test_empty_items(make_client) -> None:
    client = make_client()
    with patch.object(client, "query", AsyncMock()) as query:
        result = await client.batch_query("/:address/balance", [])

    assert list(result) == []
    assert result.errors == []
    assert result.failed == 0
    query.assert_not_awaited()


@pytest.mark.asyncio
async def test_results_keep_input_order_and_report_failures(make_client) -> None:
    client = make_client()
    rng = random.Random(3)

    async def fake_query(endpoint: str, **options: Any) -> Dict[str, Any]:
        await asyncio.sleep(rng.uniform(0, 0.02))
        if options["address"] == ITEMS[3]:
            raise APIError(404, {"message": "Not found"})
        return {"address": options["address"]}

    with patch.object(client, "query", AsyncMock(side_effect=fake_query)):
        result = await client.batch_query("/:address/balance", ITEMS, concurrency=5, chain="eth")

    assert len(result) == 7
    assert result[3] is None
    assert isinstance(result.errors[3], APIError)
    assert result.failed == 1
    for index, item in enumerate(ITEMS):
        if index != 3:
            assert result[index] == {"address": item}
            assert result.errors[index] is None


@pytest.mark.asyncio
async def test_options_are_forwarded(make_client) -> None:
    client = make_client()
    with patch.object(client, "query", AsyncMock(return_value={})) as query:
        await client.batch_query("/:address/balance", ITEMS[:2], chain="polygon", address="ignored")

    for call, item in zip(query.await_args_list, ITEMS[:2]):
        assert call.args == ("/:address/balance",)
        assert call.kwargs == {"chain": "polygon", "address": item}


@pytest.mark.asyncio
async def test_concurrency_is_bounded(make_client) -> None:
    client = make_client()
    in_flight = 0
    peak = 0

    async def fake_query(endpoint: str, **options: Any) -> int:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return 1

    with patch.object(client, "query", AsyncMock(side_effect=fake_query)):
        result = await client.batch_query("/x/:address", ITEMS, concurrency=3)

    assert list(result) == [1] * 7
    assert peak == 3


@pytest.mark.asyncio
async def test_rate_limited_items_are_retried(make_client) -> None:
    client = make_client()
    attempts: Counter = Counter()

    async def fake_query(endpoint: str, **options: Any) -> str:
        address = options["address"]
        attempts[address] += 1
        if address == ITEMS[1] and attempts[address] <= 2:
            raise APIError(429, {"message": "Too many requests"})
        return address

    with patch.object(client, "query", AsyncMock(side_effect=fake_query)):
        result = await client.batch_query("/x/:address", ITEMS[:3])

    assert list(result) == ITEMS[:3]
    assert result.failed == 0
    assert attempts[ITEMS[1]] == 3
    assert attempts[ITEMS[0]] == 1


@pytest.mark.asyncio
async def test_rate_limit_retries_are_bounded(make_client) -> None:
    client = make_client()
    error = APIError(429, {"message": "Too many requests"})

    with patch.object(client, "query", AsyncMock(side_effect=error)) as query:
        result = await client.batch_query("/x/:address", ITEMS[:1])

    assert query.await_count == 4
    assert result[0] is None
    assert result.errors[0] is error
    assert result.failed == 1


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(make_client) -> None:
    client = make_client()
    error = ValidationError("Invalid EVM address")

    with patch.object(client, "query", AsyncMock(side_effect=error)) as query:
        result = await client.batch_query("/x/:address", ITEMS[:2])

    assert query.await_count == 2
    assert result.failed == 2
    assert result.errors == [error, error]


@pytest.mark.asyncio
async def test_windows_are_separated_by_pause(make_client) -> None:
    client = make_client(backoff_initial=0.25)
    sleeps = []
    real_sleep = asyncio.sleep

    async def recording_sleep(delay: float) -> None:
        sleeps.append(delay)
        await real_sleep(0)

    with patch.object(client, "query", AsyncMock(return_value={})):
        with patch("web3_query.query_client.asyncio.sleep", new=recording_sleep):
            await client.batch_query("/x/:address", ITEMS, concurrency=3)

    # three windows, two pauses at the initial backoff
    assert sleeps == [0.25, 0.25]


@pytest.mark.asyncio
async def test_pause_grows_after_rate_limited_window(make_client) -> None:
    client = make_client(backoff_initial=0.25, backoff_max=5.0)
    sleeps = []
    real_sleep = asyncio.sleep
    attempts: Counter = Counter()

    async def recording_sleep(delay: float) -> None:
        sleeps.append(delay)
        await real_sleep(0)

    async def fake_query(endpoint: str, **options: Any) -> str:
        address = options["address"]
        attempts[address] += 1
        if address == ITEMS[0] and attempts[address] <= 2:
            raise APIError(429, {})
        return address

    with patch.object(client, "query", AsyncMock(side_effect=fake_query)):
        with patch("web3_query.query_client.asyncio.sleep", new=recording_sleep):
            await client.batch_query("/x/:address", ITEMS[:4], concurrency=2)

    # item backoff 0.25 then 0.5, the next window waits the last delay used
    assert sleeps == [0.25, 0.5, 0.5]
