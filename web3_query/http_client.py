import asyncio
import json
import socket
from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from web3_query import exceptions
from web3_query.config import settings
from web3_query.models import Metrics, RequestEnvelope

# Connectivity failures worth another attempt. Anything else is fatal.
TRANSIENT_OS_ERRORS = (ConnectionRefusedError, socket.gaierror)

# Connector errors that carry an OSError but never recover on retry.
FATAL_CONNECTOR_ERRORS = (aiohttp.ClientSSLError, aiohttp.ClientProxyConnectionError)


def is_transient(exc: BaseException) -> bool:
    """Return True for timeouts, refused connections and failed host lookups."""
    if isinstance(exc, exceptions.TimeoutError):
        return True
    if isinstance(exc, FATAL_CONNECTOR_ERRORS):
        return False
    if isinstance(exc, aiohttp.ClientConnectorError):
        return isinstance(getattr(exc, "os_error", None), TRANSIENT_OS_ERRORS)
    return isinstance(exc, TRANSIENT_OS_ERRORS)


class HTTPClient:
    """HTTPClient issues single JSON requests with timeout, retry and backoff."""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        metrics: Optional[Metrics] = None,
        timeout: float = settings.request_timeout,
        max_retries: int = settings.max_retries,
        backoff_initial: float = settings.backoff_initial,
        backoff_max: float = settings.backoff_max,
    ) -> None:
        """
        Initialize the HTTP client.

        Args:
            session (Optional[aiohttp.ClientSession]): Session used for requests.
                A session is created on first use when omitted.
            metrics (Optional[Metrics]): Counters updated on every attempt.
            timeout (float): Per-attempt deadline in seconds.
            max_retries (int): Retries allowed after the initial attempt.
            backoff_initial (float): First retry delay in seconds.
            backoff_max (float): Upper bound for the retry delay in seconds.
        """
        self._session = session
        self._owns_session = session is None
        self.metrics = metrics if metrics is not None else Metrics()
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """
        Asynchronously closes the session.

        Sessions passed in by the caller are left open.
        """
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def send(self, envelope: RequestEnvelope) -> Any:
        """Dispatch a prepared envelope through `execute`."""
        return await self.execute(
            envelope.url, envelope.headers, envelope.method, envelope.body,
        )

    async def execute(
        self,
        url: str,
        headers: Dict[str, str],
        method: str = "GET",
        body: Optional[Any] = None,
    ) -> Any:
        """
        Makes a request, retrying transient failures with exponential backoff.

        Args:
            url (str): Fully resolved URL including the query string.
            headers (Dict[str, str]): Request headers.
            method (str): HTTP method.
            body (Optional[Any]): JSON-serialisable request body.

        Returns:
            Any: The parsed JSON response, or the raw text when it is not JSON.

        Raises:
            APIError: If the service answers with a status of 400 or above.
            TimeoutError: If every attempt timed out.
            Exception: The last transient error once retries are exhausted, or
                       any other transport error immediately.
        """
        attempt = 0
        delay = self.backoff_initial

        while True:
            attempt += 1
            self.metrics.increment("requests")
            try:
                return await self._request(url, headers, method, body)

            except exceptions.APIError as exc:
                self.metrics.increment("errors")
                if exc.is_rate_limit:
                    self.metrics.increment("rate_limits")
                raise

            except Exception as exc:
                self.metrics.increment("errors")
                if isinstance(exc, exceptions.TimeoutError):
                    self.metrics.increment("timeouts")

                if not is_transient(exc):
                    raise

                if attempt > self.max_retries:
                    logger.error(f"{method} {url} failed after {attempt} attempts: {exc!r}")
                    raise

                logger.warning(
                    f"{method} {url} failed with {exc!r} "
                    f"(attempt {attempt}/{self.max_retries + 1}), retrying in {delay:.2f}s",
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.backoff_max)

    async def _request(
        self,
        url: str,
        headers: Dict[str, str],
        method: str,
        body: Optional[Any],
    ) -> Any:
        session = await self._get_session()
        headers = dict(headers)
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"
            headers["Content-Length"] = str(len(data))

        logger.debug(f"{method} {url}")
        try:
            async with session.request(
                method,
                url,
                headers=headers,
                data=data,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                text = await response.text()
                status = response.status
        except asyncio.TimeoutError as exc:
            raise exceptions.TimeoutError(
                f"Request timeout after {self.timeout} seconds",
            ) from exc

        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
            if status < 400:
                return text

        if status >= 400:
            raise exceptions.APIError(status, parsed if parsed is not None else text)
        return parsed
