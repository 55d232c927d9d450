from __future__ import annotations
import asyncio, logging, httpx
from typing import Any
from ..domain.errors import FetchError
from ..domain.models import EventField, RawSwapEvent, TokenInfo
from ..domain.value_types import ALPH_TOKEN_ID, Address, Blockchain, TxHash
from ..ports.rpc import SwapEventsClient

log = logging.getLogger(__name__)

ALPH = TokenInfo(symbol="ALPH", decimals=18, address=Address(ALPH_TOKEN_ID), name="Alephium")

def _unhex(s: str) -> str:
    """Explorer returns token symbol/name as hex-encoded bytes; fall back to the raw value."""
    try:
        return bytes.fromhex(s).decode("utf-8")
    except (ValueError, UnicodeDecodeError):
        return s

def _to_event(raw: dict[str, Any], contract_address: Address) -> RawSwapEvent:
    return RawSwapEvent(
        tx_hash=TxHash(raw["txHash"]),
        fields=tuple(EventField(type=str(f.get("type", "")), value=str(f.get("value", ""))) for f in raw.get("fields", [])),
        contract_address=Address(raw.get("contractAddress", contract_address)),
        event_index=raw.get("eventIndex"),
    )

class HttpxAlephiumClient(SwapEventsClient):
    """Alephium explorer-backend + full-node REST client."""

    def __init__(
        self,
        explorer_url: str,
        node_url: str,
        *,
        factory_address: str | None = None,
        timeout_s: float = 20,
        max_conn: int = 16,
        debug: bool = False,
        retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.explorer_url = explorer_url.rstrip("/")
        self.node_url = node_url.rstrip("/")
        self.factory_address = Address(factory_address) if factory_address else None
        self.retries = retries
        hooks = {"request": [self._log_request], "response": [self._log_response]} if debug else {}
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn // 2)),
            event_hooks=hooks,
            transport=transport,
        )

    @staticmethod
    async def _log_request(request: httpx.Request) -> None:
        log.debug("request", extra={"method": request.method, "url": str(request.url)})

    @staticmethod
    async def _log_response(response: httpx.Response) -> None:
        log.debug("response", extra={"status": response.status_code, "url": str(response.request.url)})

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _request(self, method: str, url: str, **kw: Any) -> Any:
        # retry on 429 with simple backoff
        for attempt in range(self.retries):
            try:
                r = await self.client.request(method, url, **kw)
            except httpx.HTTPError as e:
                raise FetchError(f"{method} {url} failed: {e}", e) from e
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                await asyncio.sleep(delay); continue
            try:
                r.raise_for_status()
                return r.json()
            except (httpx.HTTPStatusError, ValueError) as e:
                raise FetchError(f"{method} {url} failed: {e}", e) from e
        raise FetchError(f"Retries exhausted for {method} {url}")

    async def fetch_events(self, contract_address: Address, limit: int, page: int) -> list[RawSwapEvent]:
        data = await self._request(
            "GET", f"{self.explorer_url}/contract-events/contract-address/{contract_address}",
            params={"page": page, "limit": limit},
        )
        if not isinstance(data, list):
            raise FetchError(f"unexpected contract-events payload for {contract_address}")
        try:
            return [_to_event(ev, contract_address) for ev in data]
        except (KeyError, TypeError) as e:
            raise FetchError(f"malformed contract event for {contract_address}", e) from e

    async def fetch_transaction_timestamp(self, tx_hash: TxHash) -> int:
        data = await self._request("GET", f"{self.explorer_url}/transactions/{tx_hash}")
        try:
            return int(data["timestamp"])
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"transaction {tx_hash} has no timestamp", e) from e

    async def list_swap_contract_addresses(self, limit: int) -> list[Address]:
        if not self.factory_address:
            raise FetchError("no DEX factory address configured")
        data = await self._request(
            "GET", f"{self.explorer_url}/contracts/{self.factory_address}/sub-contracts",
            params={"page": 1, "limit": limit},
        )
        try:
            return [Address(a) for a in data["subContracts"]]
        except (KeyError, TypeError) as e:
            raise FetchError(f"malformed sub-contracts payload for {self.factory_address}", e) from e

    async def list_token_pair_addresses(self, contract_address: Address) -> tuple[Address, Address]:
        data = await self._request("GET", f"{self.node_url}/contracts/{contract_address}/state")
        try:
            imm = data["immFields"]
            return Address(imm[0]["value"]), Address(imm[1]["value"])
        except (KeyError, IndexError, TypeError) as e:
            raise FetchError(f"contract {contract_address} state has no token pair", e) from e

    async def get_token_info(self, address: Address, blockchain: Blockchain) -> TokenInfo:
        if address == ALPH_TOKEN_ID:
            return ALPH
        data = await self._request("POST", f"{self.explorer_url}/tokens/fungible-metadata", json=[address])
        try:
            meta = data[0]
            return TokenInfo(
                symbol=_unhex(meta["symbol"]),
                name=_unhex(meta.get("name", "")),
                decimals=int(meta["decimals"]),
                address=Address(meta.get("id", address)),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise FetchError(f"no fungible metadata for token {address}", e) from e
