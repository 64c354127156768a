import asyncio
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import aiohttp
from loguru import logger
from pydantic import ValidationError as ModelValidationError
from yarl import URL

from web3_query import chains as chain_registry
from web3_query.config import settings
from web3_query.credentials import get_api_key
from web3_query.dates import DateLike, parse_date, to_iso
from web3_query.detector import detect_blockchain
from web3_query.endpoints import as_endpoint, resolve_path
from web3_query.exceptions import APIError, Web3QueryError
from web3_query.http_client import HTTPClient
from web3_query.models import DateToBlock, Endpoint, Metrics, RequestEnvelope
from web3_query.utils.decorators import log_execution

EndpointLike = Union[str, Endpoint]
BlockLike = Union[int, str]


class BatchResult(list):
    """
    Results of `QueryClient.batch_query`, aligned with the input items.

    Attributes:
        errors (List[Optional[Exception]]): errors[i] is set when item i failed.
    """

    def __init__(self, results: Iterable[Any], errors: List[Optional[Exception]]) -> None:
        super().__init__(results)
        self.errors = errors

    @property
    def failed(self) -> int:
        return sum(1 for error in self.errors if error is not None)


def _query_pairs(params: Mapping[str, Any]) -> List[Tuple[str, str]]:
    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        if value is None:
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if isinstance(item, bool):
                item = "true" if item else "false"
            pairs.append((key, str(item)))
    return pairs


def _build_url(base_url: str, path: str, params: Mapping[str, Any]) -> str:
    url = URL(base_url.rstrip("/") + path)
    pairs = _query_pairs(params)
    if pairs:
        url = url.with_query(pairs)
    return str(url)


def _normalize_chain_value(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [chain_registry.resolve(item) if isinstance(item, str) else item for item in value]
    return chain_registry.resolve(value) if isinstance(value, str) else value


def _normalize_chain_fields(values: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    if values is None:
        return None
    normalized = dict(values)
    for key in ("chainId", "chainIds"):
        if key in normalized:
            normalized[key] = _normalize_chain_value(normalized[key])
    return normalized


def _page_items(response: Dict[str, Any]) -> Optional[List[Any]]:
    result = response.get("result")
    if isinstance(result, list):
        return result
    for value in response.values():
        if isinstance(value, list):
            return value
    return None


class QueryClient:
    """
    QueryClient builds and dispatches Moralis Web3 API requests.

    It detects the network family from the address, resolves chain names,
    validates chain support, converts dates to blocks and fills path
    placeholders before handing the request to an `HTTPClient`. On top of the
    single query it offers cursor pagination and bounded-concurrency batches.

    Methods:
        query(endpoint, **options) -> Any:
        paginate(endpoint, max_results, **options) -> List[Any]:
        batch_query(endpoint, items, concurrency, **options) -> BatchResult:
        date_to_block(date, chain) -> int:
        search_token(query, chains) -> Any:
        streams_query(endpoint, method, params, body, path_params) -> Any:
        get_metrics() -> Dict[str, int]:
        close() -> None:
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        key_dir: Union[str, Path, None] = None,
        session: Optional[aiohttp.ClientSession] = None,
        metrics: Optional[Metrics] = None,
        http_client: Optional[HTTPClient] = None,
        evm_base_url: str = settings.evm_base_url,
        solana_base_url: str = settings.solana_base_url,
        streams_base_url: str = settings.streams_base_url,
        page_limit: int = settings.page_limit,
        max_pages: int = settings.max_pages,
        batch_concurrency: int = settings.batch_concurrency,
        max_retries: int = settings.max_retries,
        backoff_initial: float = settings.backoff_initial,
        backoff_max: float = settings.backoff_max,
    ) -> None:
        """
        Initialize the query client.

        Args:
            api_key (Optional[str]): API key. Falls back to `settings.api_key`
                and then to the credential file found upward from `key_dir`.
            key_dir (Union[str, Path, None]): Start directory for the credential
                file search. Defaults to the working directory.
            session (Optional[aiohttp.ClientSession]): Shared HTTP session.
            metrics (Optional[Metrics]): Counters shared with the HTTP client.
            http_client (Optional[HTTPClient]): Request executor. Built from
                `session`, `metrics` and the retry settings when omitted.
            evm_base_url (str): Base URL of the EVM API.
            solana_base_url (str): Base URL of the Solana gateway.
            streams_base_url (str): Base URL of the Streams API.
            page_limit (int): Default page size used by `paginate`.
            max_pages (int): Hard cap on the number of pages fetched.
            batch_concurrency (int): Default window size of `batch_query`.
            max_retries (int): Retries for transient and rate-limited failures.
            backoff_initial (float): First retry delay in seconds.
            backoff_max (float): Upper bound for the retry delay in seconds.
        """
        self.http = http_client or HTTPClient(
            session=session,
            metrics=metrics,
            max_retries=max_retries,
            backoff_initial=backoff_initial,
            backoff_max=backoff_max,
        )
        self.metrics = self.http.metrics
        self._api_key = api_key or settings.api_key
        self.key_dir = key_dir
        self.evm_base_url = evm_base_url
        self.solana_base_url = solana_base_url
        self.streams_base_url = streams_base_url
        self.page_limit = page_limit
        self.max_pages = max_pages
        self.batch_concurrency = batch_concurrency
        self.max_retries = max_retries
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

    async def __aenter__(self) -> "QueryClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http.close()

    def get_metrics(self) -> Dict[str, int]:
        """Return a copy of the request counters."""
        return self.metrics.snapshot()

    @property
    def api_key(self) -> str:
        if self._api_key is None:
            self._api_key = get_api_key(self.key_dir)
        return self._api_key

    def _headers(self) -> Dict[str, str]:
        return {
            settings.api_key_header: self.api_key,
            "Accept": "application/json",
        }

    async def build_request(
        self,
        endpoint: EndpointLike,
        address: Optional[str] = None,
        chain: Optional[str] = None,
        network: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        path_params: Optional[Mapping[str, Any]] = None,
        method: Optional[str] = None,
        body: Optional[Any] = None,
        base_url: Optional[str] = None,
        from_date: Optional[DateLike] = None,
        to_date: Optional[DateLike] = None,
        from_block: Optional[BlockLike] = None,
        to_block: Optional[BlockLike] = None,
    ) -> RequestEnvelope:
        """
        Resolve a logical endpoint and options into a request envelope.

        Raises:
            ValidationError: On malformed addresses, unsafe or unsupported
                             chains and unresolved path placeholders.
        """
        descriptor = as_endpoint(endpoint)
        method = (method or descriptor.method).upper()
        context = detect_blockchain(address, chain=chain, network=network)
        query_params: Dict[str, Any] = dict(params or {})

        values: Dict[str, Any] = dict(path_params or {})
        if address:
            values.setdefault("address", address)
            values.setdefault("walletAddress", address)
        if context.type == "solana":
            values.setdefault("network", context.network)

        if context.type == "evm" and base_url is None:
            chain_id = context.chain or chain_registry.DEFAULT_CHAIN
            chain_registry.validate_evm_chain(chain_id, descriptor)
            path = resolve_path(descriptor.path, values)

            if from_date is not None and from_block is None:
                query_params["from_block"] = await self.date_to_block(from_date, chain_id)
            if to_date is not None and to_block is None:
                query_params["to_block"] = await self.date_to_block(to_date, chain_id)
            if from_block is not None:
                query_params["from_block"] = from_block
            if to_block is not None:
                query_params["to_block"] = to_block

            query_params["chain"] = chain_id
            url = _build_url(self.evm_base_url, path, query_params)
        else:
            path = resolve_path(descriptor.path, values)
            if method != "GET" and isinstance(body, dict):
                body = {**query_params, **body}
                query_params = {}
            url = _build_url(base_url or self.solana_base_url, path, query_params)

        return RequestEnvelope(url=url, method=method, headers=self._headers(), body=body)

    @log_execution()
    async def query(self, endpoint: EndpointLike, **options: Any) -> Any:
        """
        Query any Web3 API endpoint.

        Args:
            endpoint (EndpointLike): Path template ("/:address/balance") or an
                                     `Endpoint` descriptor.
            **options: address, chain, network, params, path_params, method,
                       body, base_url, from_date, to_date, from_block, to_block.

        Returns:
            Any: The parsed JSON response, or raw text for non-JSON responses.
        """
        envelope = await self.build_request(endpoint, **options)
        return await self.http.send(envelope)

    @log_execution()
    async def paginate(
        self,
        endpoint: EndpointLike,
        max_results: int = 0,
        **options: Any,
    ) -> List[Any]:
        """
        Follow response cursors and collect every item.

        Args:
            endpoint (EndpointLike): Endpoint to page through.
            max_results (int): Stop once this many items are collected. 0 means
                               no limit.
            **options: Options forwarded to `query`. `params["limit"]` overrides
                       the default page size.

        Returns:
            List[Any]: The collected items, at most `max_results` of them.
        """
        params: Dict[str, Any] = dict(options.pop("params", None) or {})
        params.setdefault("limit", self.page_limit)
        params.pop("cursor", None)

        items: List[Any] = []
        cursor: Optional[str] = None

        for page in range(self.max_pages):
            page_params = dict(params)
            if cursor:
                page_params["cursor"] = cursor
            response = await self.query(endpoint, params=page_params, **options)

            if isinstance(response, list):
                items.extend(response)
                break
            if not isinstance(response, dict):
                break
            page_items = _page_items(response)
            if page_items is None:
                break

            items.extend(page_items)
            if max_results > 0 and len(items) >= max_results:
                break
            cursor = response.get("cursor")
            if not cursor:
                break
        else:
            logger.warning(
                f"Stopped paginating {as_endpoint(endpoint).path} after "
                f"{self.max_pages} pages with {len(items)} items",
            )

        if max_results > 0:
            return items[:max_results]
        return items

    @log_execution()
    async def batch_query(
        self,
        endpoint: EndpointLike,
        items: Sequence[str],
        concurrency: Optional[int] = None,
        **options: Any,
    ) -> BatchResult:
        """
        Run `query` once per item, using the item as the address.

        Items are processed in consecutive windows of `concurrency` requests.
        Rate-limited items are retried with exponential backoff; other
        failures are recorded without retry.

        Returns:
            BatchResult: results aligned with `items`, plus `errors` and `failed`.
        """
        items = list(items)
        if not items:
            return BatchResult([], [])

        size = max(1, concurrency or self.batch_concurrency)
        results: List[Any] = [None] * len(items)
        errors: List[Optional[Exception]] = [None] * len(items)
        pause = self.backoff_initial

        for start in range(0, len(items), size):
            if start:
                await asyncio.sleep(pause)
            window = range(start, min(start + size, len(items)))
            outcomes = await asyncio.gather(
                *(self._query_item(endpoint, items[index], options) for index in window),
            )

            pause = self.backoff_initial
            for index, (result, error, delay) in zip(window, outcomes):
                results[index] = result
                errors[index] = error
                pause = max(pause, delay)

        batch = BatchResult(results, errors)
        if batch.failed:
            logger.warning(f"Batch finished with {batch.failed}/{len(items)} failures")
        return batch

    async def _query_item(
        self,
        endpoint: EndpointLike,
        item: str,
        options: Mapping[str, Any],
    ) -> Tuple[Any, Optional[Exception], float]:
        attempt = 0
        delay = self.backoff_initial
        used_delay = 0.0

        while True:
            try:
                result = await self.query(endpoint, **{**options, "address": item})
                return result, None, used_delay
            except APIError as exc:
                if exc.is_rate_limit and attempt < self.max_retries:
                    attempt += 1
                    logger.warning(
                        f"Rate limited on {item} (retry {attempt}/{self.max_retries}), "
                        f"waiting {delay:.2f}s",
                    )
                    await asyncio.sleep(delay)
                    used_delay = delay
                    delay = min(delay * 2, self.backoff_max)
                    continue
                logger.warning(f"Batch item {item} failed: {exc}")
                return None, exc, used_delay
            except Exception as exc:
                logger.warning(f"Batch item {item} failed: {exc!r}")
                return None, exc, used_delay

    async def date_to_block(self, date: DateLike, chain: Optional[str] = "eth") -> int:
        """
        Convert a date or relative time expression to a block number.

        Args:
            date (DateLike): Absolute date, datetime or "N <unit>s ago".
            chain (Optional[str]): Chain name or hex id.

        Returns:
            int: The block closest to the given moment.
        """
        chain_id = chain_registry.resolve(chain)
        moment = parse_date(date)
        url = _build_url(
            self.evm_base_url,
            "/dateToBlock",
            {"chain": chain_id, "date": to_iso(moment)},
        )
        response = await self.http.execute(url, self._headers())
        try:
            return DateToBlock.model_validate(response).block
        except ModelValidationError as exc:
            raise Web3QueryError(f"Unexpected dateToBlock response: {response!r}") from exc

    async def search_token(
        self,
        query: str,
        chains: Union[str, Sequence[str], None] = None,
    ) -> Any:
        """
        Search tokens by name, symbol or address.

        Args:
            query (str): Search text.
            chains (Union[str, Sequence[str], None]): Chain name/id or a
                list of them restricting the search.
        """
        params: Dict[str, Any] = {"query": query}
        if chains:
            if isinstance(chains, str):
                chains = [chains]
            params["chains"] = ",".join(chain_registry.resolve(c) for c in chains)
        url = _build_url(self.evm_base_url, "/tokens/search", params)
        return await self.http.execute(url, self._headers())

    async def streams_query(
        self,
        endpoint: EndpointLike,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
        path_params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """
        Call the Streams API.

        `chainId` and `chainIds` values in params, body and path params accept
        chain names and are sent as hex ids.
        """
        if isinstance(body, Mapping):
            body = _normalize_chain_fields(body)
        return await self.query(
            endpoint,
            method=method,
            params=_normalize_chain_fields(params),
            body=body,
            path_params=_normalize_chain_fields(path_params),
            base_url=self.streams_base_url,
        )
