from __future__ import annotations

import base64
import json
import logging
import unittest
from typing import Any

import aiohttp

from pool_bot.trading.errors import QuoteBuildError
from pool_bot.trading.swap_api import RaydiumSwapClient
from pool_bot.trading.types import SOL_MINT

TOKEN_MINT = "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R"


class _FakeResponse:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class _FakeSession:
    def __init__(self, *responses: _FakeResponse | Exception) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, *, params: Any = None, json: Any = None) -> _FakeResponse:
        self.calls.append({"method": method, "url": url, "params": params, "json": json})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _compute_payload() -> dict[str, Any]:
    return {
        "id": "quote-id",
        "success": True,
        "version": "V1",
        "data": {
            "swapType": "BaseIn",
            "inputMint": SOL_MINT,
            "inputAmount": "1000000000",
            "outputMint": TOKEN_MINT,
            "outputAmount": "4200000",
            "otherAmountThreshold": "3360000",
            "slippageBps": 2000,
            "priceImpactPct": 0.12,
            "routePlan": [{"poolId": "pool-1"}],
        },
    }


class RaydiumSwapClientTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.client = RaydiumSwapClient(logger=logging.getLogger("test.swap_api"))

    async def test_priority_fee_reads_default_tiers(self) -> None:
        session = _FakeSession(_FakeResponse(200, {"success": True, "data": {"default": {"vh": 150000, "h": 90000, "m": "30000"}}}))
        self.client._session = session

        fee = await self.client.fetch_priority_fee()

        self.assertEqual((fee.very_high, fee.high, fee.medium), (150000, 90000, 30000))
        self.assertEqual(session.calls[0]["url"], "https://api-v3.raydium.io/main/auto-fee")

    async def test_compute_swap_parses_quote(self) -> None:
        session = _FakeSession(_FakeResponse(200, _compute_payload()))
        self.client._session = session

        quote = await self.client.compute_swap(
            input_mint=SOL_MINT,
            output_mint=TOKEN_MINT,
            amount=1_000_000_000,
            slippage_bps=2000,
            tx_version="LEGACY",
        )

        self.assertEqual(quote.output_amount, 4_200_000)
        self.assertEqual(quote.other_amount_threshold, 3_360_000)
        self.assertEqual(quote.route_pool_ids, ("pool-1",))
        self.assertEqual(quote.raw["id"], "quote-id")
        params = session.calls[0]["params"]
        self.assertEqual(params["amount"], "1000000000")
        self.assertEqual(params["slippageBps"], "2000")
        self.assertEqual(params["txVersion"], "LEGACY")

    async def test_rejected_quote_raises(self) -> None:
        self.client._session = _FakeSession(_FakeResponse(200, {"success": False, "msg": "ROUTE_NOT_FOUND"}))

        with self.assertRaises(QuoteBuildError) as caught:
            await self.client.compute_swap(
                input_mint=SOL_MINT,
                output_mint=TOKEN_MINT,
                amount=1,
                slippage_bps=50,
                tx_version="V0",
            )

        self.assertIn("ROUTE_NOT_FOUND", str(caught.exception))

    async def test_build_transactions_decodes_every_payload(self) -> None:
        first, second = b"\x01unsigned-setup", b"\x01unsigned-swap"
        session = _FakeSession(
            _FakeResponse(200, _compute_payload()),
            _FakeResponse(
                200,
                {
                    "success": True,
                    "data": [
                        {"transaction": base64.b64encode(first).decode()},
                        {"transaction": base64.b64encode(second).decode()},
                    ],
                },
            ),
        )
        self.client._session = session
        quote = await self.client.compute_swap(
            input_mint=SOL_MINT,
            output_mint=TOKEN_MINT,
            amount=1_000_000_000,
            slippage_bps=2000,
            tx_version="LEGACY",
        )

        transactions = await self.client.build_transactions(
            quote=quote,
            priority_fee_micro_lamports=150000,
            wallet="wallet-pubkey",
            wrap_sol=True,
            unwrap_sol=False,
            input_account=None,
            output_account="token-account",
        )

        self.assertEqual(transactions, [first, second])
        body = session.calls[1]["json"]
        self.assertEqual(session.calls[1]["method"], "POST")
        self.assertEqual(body["computeUnitPriceMicroLamports"], "150000")
        self.assertEqual(body["swapResponse"]["id"], "quote-id")
        self.assertTrue(body["wrapSol"])
        self.assertEqual(body["outputAccount"], "token-account")
        self.assertNotIn("inputAccount", body)

    async def test_http_errors_and_transport_failures_raise(self) -> None:
        self.client._session = _FakeSession(
            _FakeResponse(502, "bad gateway"),
            aiohttp.ClientConnectionError("refused"),
        )

        with self.assertRaises(QuoteBuildError):
            await self.client.fetch_priority_fee()
        with self.assertRaises(QuoteBuildError):
            await self.client.fetch_priority_fee()


if __name__ == "__main__":
    unittest.main()
