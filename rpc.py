import base64
import logging
from typing import Optional

import httpx
from solders.hash import Hash
from solders.pubkey import Pubkey

from config import HTTP_TIMEOUT, RPC_ENDPOINT
from errors import RpcError

logger = logging.getLogger(__name__)


class AccountData:
    def __init__(self, data: bytes, owner: Pubkey, lamports: int):
        self.data = data
        self.owner = owner
        self.lamports = lamports


class SolanaRpc:
    """Minimal JSON-RPC client for the calls the bot needs (blockhash, balances, accounts)."""

    def __init__(self, endpoint: str = RPC_ENDPOINT, http_client: Optional[httpx.AsyncClient] = None):
        self.endpoint = endpoint
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT)
        return self._http_client

    async def close(self):
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _call(self, method: str, params: list):
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        client = await self._client()
        try:
            response = await client.post(self.endpoint, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise RpcError(f"{method} failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise RpcError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise RpcError(f"{method} returned invalid JSON") from e

        if "error" in data:
            raise RpcError(f"{method} failed: {data['error'].get('message', 'Unknown RPC error')}")
        if "result" not in data:
            raise RpcError(f"{method} failed: no result in RPC response")
        return data["result"]

    async def get_latest_blockhash(self) -> Hash:
        result = await self._call("getLatestBlockhash", [{"commitment": "finalized"}])
        blockhash = Hash.from_string(result["value"]["blockhash"])
        logger.debug("Latest blockhash: %s", blockhash)
        return blockhash

    async def get_balance(self, pubkey: Pubkey) -> int:
        """Balance in lamports."""
        result = await self._call("getBalance", [str(pubkey), {"commitment": "confirmed"}])
        return int(result["value"])

    async def get_account_info(self, pubkey: Pubkey) -> Optional[AccountData]:
        result = await self._call(
            "getAccountInfo",
            [str(pubkey), {"encoding": "base64", "commitment": "confirmed"}],
        )
        value = result.get("value")
        if value is None:
            return None
        raw, _encoding = value["data"]
        return AccountData(
            data=base64.b64decode(raw),
            owner=Pubkey.from_string(value["owner"]),
            lamports=int(value["lamports"]),
        )
