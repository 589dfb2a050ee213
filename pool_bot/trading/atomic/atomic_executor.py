from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any

import aiohttp
from solders.pubkey import Pubkey

from pool_bot.common import log_event

from ..errors import JitoBundleRateLimitError, RelayRejectionError
from .atomic_types import SignedBundle

_RATE_LIMIT_MARKERS = (
    "rate limit",
    "rate-limit",
    "too many requests",
    "congested",
    "try again later",
)


def _retry_after(headers: Any) -> float | None:
    raw = str(headers.get("Retry-After") or "").strip()
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def _describe_error(error: Any) -> str:
    if isinstance(error, dict):
        for key in ("message", "details"):
            if error.get(key):
                return str(error[key])
    return str(error)


def _looks_rate_limited(description: str) -> bool:
    lowered = description.lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


class RelayTransportError(RuntimeError):
    """The request never produced an HTTP response (connection reset, timeout)."""


class JitoBlockEngineClient:
    def __init__(
        self,
        *,
        logger: logging.Logger,
        block_engine_url: str,
    ) -> None:
        self._logger = logger
        self._url = block_engine_url.strip()
        self._tip_accounts: tuple[str, ...] = ()

    async def _call(
        self,
        *,
        session: aiohttp.ClientSession,
        method: str,
        params: list[Any],
    ) -> tuple[int, float | None, Any, str]:
        if not self._url:
            raise RelayRejectionError("JITO_BLOCK_ENGINE_URL is required for bundle submission.")

        request = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            async with session.post(self._url, json=request) as response:
                status = response.status
                retry_after = _retry_after(response.headers)
                body = await response.text()
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            raise RelayTransportError(f"Jito {method} transport failed: {error}") from error

        try:
            decoded: Any = json.loads(body) if body else {}
        except json.JSONDecodeError:
            decoded = {"raw": body}
        return status, retry_after, decoded, body

    @staticmethod
    def _raise_for_error(
        *,
        method: str,
        status: int,
        retry_after: float | None,
        decoded: Any,
        body: str,
    ) -> None:
        error = decoded.get("error") if isinstance(decoded, dict) else None
        if status < 400 and not error:
            return

        description = _describe_error(error) if error else body[:240]
        if status == 429 or _looks_rate_limited(description):
            raise JitoBundleRateLimitError(
                f"Jito {method} rate-limited: status={status} error={description!r}",
                retry_after_seconds=retry_after,
            )
        raise RelayRejectionError(f"Jito {method} rejected: status={status} error={description!r}")

    async def fetch_tip_accounts(
        self,
        *,
        session: aiohttp.ClientSession,
    ) -> list[str]:
        if self._tip_accounts:
            return list(self._tip_accounts)

        try:
            status, retry_after, decoded, body = await self._call(
                session=session,
                method="getTipAccounts",
                params=[],
            )
        except RelayTransportError as error:
            raise RelayRejectionError(str(error)) from error
        self._raise_for_error(
            method="getTipAccounts",
            status=status,
            retry_after=retry_after,
            decoded=decoded,
            body=body,
        )

        listed = decoded.get("result") if isinstance(decoded, dict) else None
        accounts = tuple(
            text for text in (str(item).strip() for item in (listed if isinstance(listed, list) else [])) if text
        )
        if not accounts:
            raise RelayRejectionError(f"Jito getTipAccounts returned no tip accounts: {decoded}")

        self._tip_accounts = accounts
        log_event(
            self._logger,
            level="info",
            event="jito_tip_accounts_loaded",
            message="Jito tip accounts cached",
            tip_account_count=len(accounts),
        )
        return list(accounts)

    async def select_tip_account(self, *, session: aiohttp.ClientSession) -> Pubkey:
        candidate = random.choice(await self.fetch_tip_accounts(session=session))
        try:
            return Pubkey.from_string(candidate)
        except ValueError as error:
            raise RelayRejectionError(f"Jito returned an invalid tip account: {candidate}") from error

    async def send_bundle(
        self,
        *,
        session: aiohttp.ClientSession,
        bundle: SignedBundle,
    ) -> str | None:
        """Submit every transaction of ``bundle`` in a single ``sendBundle`` call.

        Raises ``RelayTransportError`` when the request never got a response,
        ``JitoBundleRateLimitError`` when throttled and ``RelayRejectionError``
        for any other error reply.
        """
        status, retry_after, decoded, body = await self._call(
            session=session,
            method="sendBundle",
            params=[list(bundle.transactions), {"encoding": "base64"}],
        )
        self._raise_for_error(
            method="sendBundle",
            status=status,
            retry_after=retry_after,
            decoded=decoded,
            body=body,
        )

        result = decoded.get("result") if isinstance(decoded, dict) else None
        if isinstance(result, dict):
            result = result.get("bundleId") or result.get("id")
        bundle_id = str(result) if result else None

        log_event(
            self._logger,
            level="info",
            event="jito_bundle_submitted",
            message="Bundle accepted by the Jito block engine",
            tx_count=len(bundle),
            tip_lamports=bundle.tip_lamports,
            bundle_id=bundle_id,
        )
        return bundle_id
