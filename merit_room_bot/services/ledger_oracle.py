from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, Dict
from urllib.parse import quote

import aiohttp

from ..errors import MalformedSignature, OracleFailure


logger = logging.getLogger("merit_room_bot")

_RETRIABLE_STATUSES = {408, 409, 429, 500, 502, 503, 504}


class LedgerOracle:
    """HTTP client for the ledger service that checks signed messages and computes merit."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: int,
        api_token: str = "",
        retries: int = 3,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.api_token = api_token.strip()
        self.retries = max(1, int(retries))
        self._session: aiohttp.ClientSession | None = None

    async def start(self) -> None:
        if self._session is None or self._session.closed:
            headers = {"Accept": "application/json"}
            if self.api_token:
                headers["Authorization"] = f"Bearer {self.api_token}"
            self._session = aiohttp.ClientSession(timeout=self.timeout, headers=headers)

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, path: str, payload: Dict[str, Any] | None = None) -> Dict[str, Any]:
        if self._session is None or self._session.closed:
            await self.start()
        assert self._session is not None

        url = f"{self.base_url}{path}"
        last_error: Exception | None = None

        for attempt in range(1, self.retries + 1):
            try:
                async with self._session.request(method, url, json=payload) as response:
                    status = response.status
                    text = await response.text()
            except asyncio.CancelledError:
                raise
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = exc
            else:
                if status == 200:
                    return self._parse_body(path, text)
                if status == 400 and path.startswith("/signatures"):
                    raise MalformedSignature(text or "Malformed signature")
                if status not in _RETRIABLE_STATUSES:
                    raise OracleFailure(f"Ledger error {status}: {text}")
                last_error = OracleFailure(f"Ledger retriable error {status}: {text}")

            if attempt < self.retries:
                await asyncio.sleep(min(4.0, 0.35 * attempt + random.random() * 0.2))

        raise OracleFailure(f"Ledger request {method} {path} failed after retries: {last_error}")

    @staticmethod
    def _parse_body(path: str, text: str) -> Dict[str, Any]:
        try:
            data = json.loads(text) if text else {}
        except ValueError:
            raise OracleFailure(f"Ledger returned invalid JSON for {path}") from None
        if not isinstance(data, dict):
            raise OracleFailure(f"Ledger returned a non-object body for {path}")
        return data

    async def validate_signature(self, address: str, proof: str, challenge_word: str) -> bool:
        data = await self._request(
            "POST",
            "/signatures/verify",
            {"address": address, "signature": proof, "message": challenge_word},
        )
        valid = bool(data.get("valid", False))
        logger.debug("Signature check for %s: %s", address, valid)
        return valid

    async def compute_merit(self, address: str) -> float:
        data = await self._request("GET", f"/merit/{quote(address, safe='')}")
        raw = data.get("merit")
        try:
            merit = float(raw)
        except (TypeError, ValueError):
            raise OracleFailure(f"Ledger returned an invalid merit value for {address}: {raw!r}") from None
        return max(0.0, merit)
