"""
Rate-limited client for the Blockscout-style explorer (Storyscan by default).

One shared ExplorerClient per process owns an httpx.AsyncClient and a
RequestLimiter; every network call goes through the limiter. Server errors
(>= 500), 429 and transport failures are retried with exponential backoff and
end in SourceUnavailable once retries are exhausted.

Usage:
    async with ExplorerClient.from_settings(get_settings()) as client:
        addresses = await client.resolve_addresses("verio")
        async for tx in client.transactions_for(addresses[0].address, cutoff):
            ...
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import httpx

from backend_dappstats import __version__
from backend_dappstats.core.exceptions import DappStatsError, NotFound, SourceUnavailable
from backend_dappstats.dappstats_logging import get_logger
from backend_dappstats.explorer.models import AddressDescriptor, ExplorerTransaction
from backend_dappstats.explorer.rate_limit import RequestLimiter

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 30.0
DEFAULT_MIN_INTERVAL_SEC = 0.12
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE_SEC = 1.0
DEFAULT_PAGE_DELAY_SEC = 0.1
DEFAULT_MAX_PAGES = 500
HEALTH_TIMEOUT_SEC = 5.0
USER_AGENT = f"dappstats-backend/{__version__}"


def _is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


class TransactionStream:
    """
    Finite, most-recent-first stream of one address's transactions.

    Stops when the explorer has no next page, when an item is older than the
    cutoff (that item is not yielded), or at the page limit. Can be iterated
    once; a second iteration raises RuntimeError.
    """

    def __init__(
        self,
        client: "ExplorerClient",
        address: str,
        cutoff: int,
        *,
        max_pages: int,
        page_delay_sec: float,
    ) -> None:
        self._client = client
        self.address = address.strip().lower()
        self.cutoff = int(cutoff)
        self.max_pages = max(1, int(max_pages))
        self._page_delay = page_delay_sec
        self._started = False
        self.pages_fetched = 0
        self.items_yielded = 0
        self.stop_reason: str | None = None

    def __aiter__(self) -> AsyncIterator[ExplorerTransaction]:
        if self._started:
            raise RuntimeError("TransactionStream can only be iterated once")
        self._started = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ExplorerTransaction]:
        path = f"/api/v1/addresses/{self.address}/transactions"
        params: dict[str, Any] | None = None
        while True:
            try:
                data = await self._client._get_json(path, params)
            except (httpx.HTTPStatusError, NotFound) as e:
                if self.pages_fetched == 0:
                    raise
                logger.warning(
                    "explorer_pagination_stopped",
                    address=self.address,
                    page=self.pages_fetched + 1,
                    error=str(e),
                )
                self.stop_reason = "client_error"
                return
            self.pages_fetched += 1

            for item in data.get("items") or []:
                if not isinstance(item, dict):
                    continue
                tx = ExplorerTransaction.from_api_item(item)
                if tx.timestamp is not None and tx.timestamp < self.cutoff:
                    self.stop_reason = "cutoff"
                    return
                self.items_yielded += 1
                yield tx

            next_params = data.get("next_page_params")
            if not next_params:
                self.stop_reason = "exhausted"
                return
            if self.pages_fetched >= self.max_pages:
                logger.warning(
                    "explorer_page_limit_reached",
                    address=self.address,
                    max_pages=self.max_pages,
                )
                self.stop_reason = "page_limit"
                return
            if isinstance(next_params, dict):
                params = {k: v for k, v in next_params.items() if v is not None}
            else:
                params = {"next_page_params": str(next_params)}
            if self._page_delay > 0:
                await asyncio.sleep(self._page_delay)


class ExplorerClient:
    """Shared explorer client. Close with aclose() or use as an async context manager."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        min_interval_sec: float = DEFAULT_MIN_INTERVAL_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base_sec: float = DEFAULT_BACKOFF_BASE_SEC,
        page_delay_sec: float = DEFAULT_PAGE_DELAY_SEC,
        max_pages: int = DEFAULT_MAX_PAGES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url.strip():
            raise ValueError("base_url must be non-empty")
        self.base_url = base_url.strip().rstrip("/")
        self.max_retries = max(0, int(max_retries))
        self.backoff_base_sec = backoff_base_sec
        self.page_delay_sec = page_delay_sec
        self.max_pages = max_pages
        self._limiter = RequestLimiter(min_interval_sec)
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_sec,
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "ExplorerClient":
        kwargs: dict[str, Any] = {
            "timeout_sec": settings.explorer_timeout_sec,
            "min_interval_sec": settings.rate_limit_min_interval_sec,
            "max_pages": settings.ingest_max_pages,
        }
        kwargs.update(overrides)
        return cls(settings.explorer_base_url, **kwargs)

    async def __aenter__(self) -> "ExplorerClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> httpx.Response:
        """GET through the limiter with retry on 5xx / 429 / transport errors."""
        kwargs: dict[str, Any] = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        last_error = ""
        last_status: int | None = None
        for attempt in range(self.max_retries + 1):
            try:
                resp = await self._limiter.run(lambda: self._http.get(path, **kwargs))
            except httpx.TransportError as e:
                last_error = f"{type(e).__name__}: {e}"
                last_status = None
            else:
                if not _is_retryable_status(resp.status_code):
                    return resp
                last_error = f"HTTP {resp.status_code}"
                last_status = resp.status_code
            if attempt >= self.max_retries:
                break
            delay = self.backoff_base_sec * (2 ** attempt)
            logger.warning(
                "explorer_request_retry",
                path=path,
                attempt=attempt + 1,
                delay_sec=delay,
                error=last_error,
            )
            if delay > 0:
                await asyncio.sleep(delay)
        logger.error(
            "explorer_request_failed",
            path=path,
            retries=self.max_retries,
            error=last_error,
        )
        raise SourceUnavailable(
            f"explorer request {path} failed after {self.max_retries} retries: {last_error}",
            status_code=last_status,
        )

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        resp = await self._request(path, params)
        if resp.status_code == 404:
            raise NotFound(f"explorer returned 404 for {path}")
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, dict) else {}

    async def resolve_addresses(self, slug: str, tag_type: str = "protocol") -> list[AddressDescriptor]:
        """
        Addresses the explorer attributes to a dApp slug.

        Raises:
            NotFound: explorer answered 404 or listed no addresses.
            SourceUnavailable: retries exhausted.
        """
        data = await self._get_json(f"/api/v1/metadata/{slug}", {"tag_type": tag_type})
        descriptors = []
        for item in data.get("addresses") or []:
            if not isinstance(item, dict):
                continue
            desc = AddressDescriptor.from_api_item(item)
            if desc is not None:
                descriptors.append(desc)
        if not descriptors:
            raise NotFound(f"no addresses found for dApp {slug!r}")
        logger.info("explorer_addresses_resolved", dapp_slug=slug, count=len(descriptors))
        return descriptors

    def transactions_for(
        self,
        address: str,
        cutoff: int,
        *,
        max_pages: int | None = None,
    ) -> TransactionStream:
        return TransactionStream(
            self,
            address,
            cutoff,
            max_pages=max_pages or self.max_pages,
            page_delay_sec=self.page_delay_sec,
        )

    async def transaction_by_hash(self, tx_hash: str) -> ExplorerTransaction | None:
        """Best effort single lookup; source and decoding failures are logged and return None."""
        try:
            data = await self._get_json(f"/api/v1/transactions/{tx_hash}")
        except (DappStatsError, httpx.HTTPError, ValueError) as e:
            logger.warning("explorer_tx_lookup_failed", tx_hash=tx_hash, error=str(e))
            return None
        if not data:
            return None
        return ExplorerTransaction.from_api_item(data)

    async def health_check(self) -> bool:
        try:
            resp = await self._limiter.run(
                lambda: self._http.get("/api/v1/health", timeout=HEALTH_TIMEOUT_SEC)
            )
        except httpx.HTTPError as e:
            logger.warning("explorer_health_failed", error=str(e))
            return False
        return resp.is_success
