"""Adapters for the blockchain transaction indexer (Koios) and the price ticker.

Both clients return raw upstream payloads; received-amount and conversion
logic lives in the pipeline.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from datetime import UTC, date, datetime, time
from typing import Any

import httpx

from catalyst_monitor.errors import UpstreamFetchError
from catalyst_monitor.utils import lovelace_to_ada, to_float

log = logging.getLogger(__name__)

_USER_AGENT = "CatalystMonitor/1.0"
_TIMEOUT = 20.0
_PAGE_SIZE = 1000
_TX_INFO_BATCH = 50


async def request_json(
    method: str,
    url: str,
    *,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    json_body: Any = None,
    timeout: float = _TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """Issue one HTTP request and decode JSON, raising UpstreamFetchError on any failure."""
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"User-Agent": _USER_AGENT, "Accept": "application/json", **(headers or {})},
            transport=transport,
        ) as client:
            resp = await client.request(method, url, params=params, json=json_body)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPStatusError as exc:
        raise UpstreamFetchError(f"{method} {url} returned {exc.response.status_code}", endpoint=url) from exc
    except httpx.HTTPError as exc:
        raise UpstreamFetchError(f"{method} {url} failed: {exc}", endpoint=url) from exc
    except ValueError as exc:
        raise UpstreamFetchError(f"{method} {url} returned invalid JSON", endpoint=url) from exc


def _day_start(d: date) -> int:
    return int(datetime.combine(d, time.min, tzinfo=UTC).timestamp())


def tx_time(tx: dict[str, Any]) -> float | None:
    """Block time of a raw transaction in unix seconds, if present."""
    for key in ("block_time", "tx_timestamp"):
        if tx.get(key) is not None:
            return to_float(tx[key])
    return None


class KoiosClient:
    """Koios REST client: wallet transaction history and balances."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = _TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        page_size: int = _PAGE_SIZE,
    ):
        self.base_url = base_url.rstrip("/")
        self._headers: dict[str, str] = {}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._timeout = timeout
        self._transport = transport
        self._page_size = page_size

    async def _post(self, path: str, body: dict[str, Any], params: dict[str, Any] | None = None) -> list:
        data = await request_json(
            "POST", f"{self.base_url}{path}", headers=self._headers, params=params,
            json_body=body, timeout=self._timeout, transport=self._transport,
        )
        if not isinstance(data, list):
            raise UpstreamFetchError(f"Unexpected payload from {path}: {type(data).__name__}", endpoint=path)
        return data

    async def _iter_tx_hashes(self, wallet: str) -> AsyncIterator[dict[str, Any]]:
        offset = 0
        while True:
            page = await self._post(
                "/address_txs", {"_addresses": [wallet]},
                params={"offset": offset, "limit": self._page_size},
            )
            for item in page:
                if isinstance(item, dict):
                    yield item
            if len(page) < self._page_size:
                return
            offset += self._page_size

    async def iter_transactions(
        self, wallet: str, start: date | None = None, end: date | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield raw transaction records for *wallet* within [start, end).

        Either bound may be None for an open-ended range. Hashes are paged from
        ``/address_txs`` and expanded through ``/tx_info`` in small batches.
        """
        lo = _day_start(start) if start else None
        hi = _day_start(end) if end else None

        batch: list[str] = []
        async for item in self._iter_tx_hashes(wallet):
            ts = tx_time(item)
            if ts is not None and ((lo is not None and ts < lo) or (hi is not None and ts >= hi)):
                continue
            tx_hash = item.get("tx_hash")
            if not tx_hash:
                continue
            batch.append(tx_hash)
            if len(batch) >= _TX_INFO_BATCH:
                for tx in await self._tx_info(batch):
                    yield tx
                batch = []
        if batch:
            for tx in await self._tx_info(batch):
                yield tx

    async def _tx_info(self, hashes: list[str]) -> list[dict[str, Any]]:
        data = await self._post("/tx_info", {
            "_tx_hashes": hashes,
            "_inputs": False,
            "_metadata": True,
            "_assets": False,
            "_withdrawals": False,
            "_certs": False,
            "_scripts": False,
            "_bytecode": False,
        })
        return [tx for tx in data if isinstance(tx, dict)]

    async def get_balance(self, wallet: str) -> float:
        """Current wallet balance in ADA."""
        data = await self._post("/address_info", {"_addresses": [wallet]})
        if not data:
            return 0.0
        if not isinstance(data[0], dict):
            raise UpstreamFetchError(
                f"Unexpected address record from /address_info: {type(data[0]).__name__}", endpoint="/address_info",
            )
        return lovelace_to_ada(data[0].get("balance"))


class PriceClient:
    """Spot exchange rates from a CoinGecko-compatible simple-price endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = _TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self._timeout = timeout
        self._transport = transport

    async def get_rate(self, base: str = "cardano", quote: str = "usd") -> float:
        data = await request_json(
            "GET", self.url, params={"ids": base, "vs_currencies": quote},
            timeout=self._timeout, transport=self._transport,
        )
        try:
            rate = data[base][quote]
        except (KeyError, TypeError) as exc:
            raise UpstreamFetchError(f"No {base}/{quote} rate in price response", endpoint=self.url) from exc
        return to_float(rate)
