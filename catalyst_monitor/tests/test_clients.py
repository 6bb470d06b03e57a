"""HTTP adapters exercised through httpx.MockTransport.

Covers: Koios paging and date filtering, balances, the price ticker,
the milestone-API plan and the Discord notifier.
"""
from __future__ import annotations

import json
from datetime import date

import httpx
import pytest

from catalyst_monitor.errors import UpstreamFetchError
from catalyst_monitor.ledger import KoiosClient, PriceClient
from catalyst_monitor.milestones_api import MilestonesClient
from catalyst_monitor.notifier import BOT_USERNAME, Notifier

BASE = "https://koios.example/api/v1"
WALLET = "addr_test1wallet"

DEC_31 = 1703980800  # 2023-12-31
JAN_15 = 1705276800  # 2024-01-15
FEB_01 = 1706745600  # 2024-02-01


class TestKoiosClient:
    @pytest.mark.asyncio
    async def test_iter_transactions_pages_and_filters_range(self):
        history = [
            {"tx_hash": "old", "block_time": DEC_31},
            {"tx_hash": "in", "block_time": JAN_15},
            {"tx_hash": "edge", "block_time": FEB_01},
        ]
        seen_offsets: list[int] = []
        tx_info_requests: list[list[str]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            if request.url.path.endswith("/address_txs"):
                assert body == {"_addresses": [WALLET]}
                offset = int(request.url.params["offset"])
                limit = int(request.url.params["limit"])
                seen_offsets.append(offset)
                return httpx.Response(200, json=history[offset:offset + limit])
            if request.url.path.endswith("/tx_info"):
                tx_info_requests.append(body["_tx_hashes"])
                assert body["_metadata"] is True
                return httpx.Response(200, json=[{"tx_hash": h, "block_time": JAN_15} for h in body["_tx_hashes"]])
            return httpx.Response(404)

        client = KoiosClient(BASE, transport=httpx.MockTransport(handler), page_size=2)
        txs = [tx async for tx in client.iter_transactions(WALLET, date(2024, 1, 1), date(2024, 2, 1))]

        assert seen_offsets == [0, 2]
        assert tx_info_requests == [["in"]]
        assert [t["tx_hash"] for t in txs] == ["in"]

    @pytest.mark.asyncio
    async def test_open_range_keeps_everything(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/address_txs"):
                return httpx.Response(200, json=[{"tx_hash": "a", "block_time": DEC_31},
                                                 {"tx_hash": "b", "block_time": FEB_01}])
            body = json.loads(request.content)
            return httpx.Response(200, json=[{"tx_hash": h} for h in body["_tx_hashes"]])

        client = KoiosClient(BASE, transport=httpx.MockTransport(handler))
        txs = [tx async for tx in client.iter_transactions(WALLET)]
        assert [t["tx_hash"] for t in txs] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_get_balance_converts_to_ada_and_sends_key(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer k0i0s"
            return httpx.Response(200, json=[{"address": WALLET, "balance": "2500000"}])

        client = KoiosClient(BASE, api_key="k0i0s", transport=httpx.MockTransport(handler))
        assert await client.get_balance(WALLET) == pytest.approx(2.5)

    @pytest.mark.asyncio
    async def test_http_error_raises_upstream_fetch_error(self):
        client = KoiosClient(BASE, transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        with pytest.raises(UpstreamFetchError) as exc_info:
            await client.get_balance(WALLET)
        assert exc_info.value.endpoint.endswith("/address_info")

    @pytest.mark.asyncio
    async def test_non_list_payload_is_rejected(self):
        client = KoiosClient(BASE, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"error": "x"})))
        with pytest.raises(UpstreamFetchError):
            await client.get_balance(WALLET)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("record", [None, "addr", 42, ["balance", "1"]])
    async def test_non_object_address_record_is_rejected(self, record):
        client = KoiosClient(BASE, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[record])))
        with pytest.raises(UpstreamFetchError) as exc_info:
            await client.get_balance(WALLET)
        assert exc_info.value.endpoint == "/address_info"

    @pytest.mark.asyncio
    async def test_empty_address_info_is_zero_balance(self):
        client = KoiosClient(BASE, transport=httpx.MockTransport(lambda r: httpx.Response(200, json=[])))
        assert await client.get_balance(WALLET) == 0.0

    @pytest.mark.asyncio
    async def test_non_object_history_entries_are_skipped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/address_txs"):
                return httpx.Response(200, json=[None, "junk", {"tx_hash": "a", "block_time": JAN_15}])
            return httpx.Response(200, json=[None, {"tx_hash": "a"}, 7])

        client = KoiosClient(BASE, transport=httpx.MockTransport(handler))
        txs = [tx async for tx in client.iter_transactions(WALLET)]
        assert txs == [{"tx_hash": "a"}]


class TestPriceClient:
    @pytest.mark.asyncio
    async def test_get_rate(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["ids"] == "cardano"
            assert request.url.params["vs_currencies"] == "usd"
            return httpx.Response(200, json={"cardano": {"usd": 0.45}})

        prices = PriceClient("https://prices.example/simple/price", transport=httpx.MockTransport(handler))
        assert await prices.get_rate() == pytest.approx(0.45)

    @pytest.mark.asyncio
    async def test_missing_rate_raises(self):
        prices = PriceClient("https://prices.example/simple/price",
                             transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        with pytest.raises(UpstreamFetchError):
            await prices.get_rate()


class TestMilestonesClient:
    def test_proposal_url(self):
        assert MilestonesClient("https://ms.example/").proposal_url(10) == "https://ms.example/proposals/10"

    @pytest.mark.asyncio
    async def test_fetch_plan_from_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/milestones/10"
            return httpx.Response(200, json=[
                {"milestone": 1, "title": "Design", "month": 2, "cost": "30000"},
                {"milestone": 2, "title": "Build", "month": None, "cost": None},
                {"milestone": 0, "title": "ignored"},
                "junk",
            ])

        client = MilestonesClient("https://ms.example", transport=httpx.MockTransport(handler))
        plan = await client.fetch_plan(10)
        assert set(plan) == {1, 2}
        assert (plan[1].month, plan[1].cost) == (2, 30_000.0)
        assert (plan[2].month, plan[2].cost) == (None, None)

    @pytest.mark.asyncio
    async def test_fetch_plan_from_wrapped_object(self):
        payload = {"milestones": [{"milestone": 3, "month": 9, "cost": 1000}]}
        client = MilestonesClient("https://ms.example",
                                  transport=httpx.MockTransport(lambda r: httpx.Response(200, json=payload)))
        plan = await client.fetch_plan(10)
        assert plan[3].month == 9

    @pytest.mark.asyncio
    async def test_unexpected_payload_raises(self):
        client = MilestonesClient("https://ms.example",
                                  transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"detail": "x"})))
        with pytest.raises(UpstreamFetchError):
            await client.fetch_plan(10)


class TestNotifier:
    @pytest.mark.asyncio
    async def test_without_webhook_skips(self):
        assert await Notifier("").send("hello") is False

    @pytest.mark.asyncio
    async def test_posts_content_and_username(self):
        sent: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(json.loads(request.content))
            return httpx.Response(204)

        notifier = Notifier("https://discord.example/webhook", transport=httpx.MockTransport(handler))
        assert await notifier.send("update done") is True
        assert sent == [{"content": "update done", "username": BOT_USERNAME}]

    @pytest.mark.asyncio
    async def test_delivery_failure_is_swallowed(self):
        notifier = Notifier("https://discord.example/webhook",
                            transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        assert await notifier.send("update done") is False
