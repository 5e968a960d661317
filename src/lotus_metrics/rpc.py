"""JSON-RPC clients for the Lotus full node and storage miner APIs."""
from __future__ import annotations

import http.client
import json
import logging
import socket
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from urllib import request, error as urlerror

from .balance import parse_atto
from .types import TransportError

logger = logging.getLogger(__name__)

METHOD_PREFIX = "Filecoin."


def _jsonrpc(url: str, method: str, params=None, token: str = "", timeout: float = 5.0) -> Tuple[Optional[Any], Optional[str]]:
    """POST one JSON-RPC 2.0 request.

    Returns (result, None) on success and (None, error_message) otherwise.
    A successful call may legitimately return a null result.
    """
    if params is None:
        params = []
    payload = json.dumps({"jsonrpc": "2.0", "id": 1, "method": method, "params": params}).encode()
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    req = request.Request(url, data=payload, headers=headers)
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            data = json.loads(resp.read().decode())
            if "error" in data and data["error"] is not None:
                return None, f"rpc {method} error: {data['error']}"
            return data.get("result"), None
    except socket.timeout:
        return None, f"rpc {method} timeout after {timeout}s (url={url})"
    except urlerror.HTTPError as e:
        return None, f"rpc {method} HTTP {e.code} (url={url}): {e.reason}"
    except urlerror.URLError as e:
        reason = getattr(e, "reason", e)
        return None, f"rpc {method} connection error (url={url}): {reason}"
    except (http.client.HTTPException, ValueError, OSError) as e:
        return None, f"rpc {method} unexpected error (url={url}): {e}"


class LotusClient:
    """Thin wrapper binding an endpoint and token to `_jsonrpc`."""

    def __init__(self, url: str, token: str = "", timeout: float = 5.0):
        self.url = url
        self.token = token
        self.timeout = timeout

    def call(self, method: str, *params) -> Any:
        """Call `Filecoin.<method>`.

        Raises:
            TransportError: the call didn't complete or returned an RPC error.
        """
        full_method = METHOD_PREFIX + method
        logger.debug("calling %s on %s", full_method, self.url)
        result, err = _jsonrpc(self.url, full_method, list(params), token=self.token, timeout=self.timeout)
        if err is not None:
            raise TransportError(full_method, err)
        return result


class NodeClient(LotusClient):
    """Calls served by the full node (`lotus daemon`)."""

    def get_sync_status(self, include_chain: bool) -> Dict[str, Any]:
        return self.call("NodeStatus", include_chain) or {}

    def list_wallet_addresses(self) -> List[str]:
        return list(self.call("WalletList") or [])

    def get_balance(self, address: str) -> Decimal:
        """Balance of `address` in attoFIL."""
        return parse_atto(self.call("WalletBalance", address))


class MinerClient(LotusClient):
    """Calls served by the storage miner (`lotus-miner run`)."""

    def get_sector_state_summary(self) -> Dict[str, int]:
        return self.call("SectorsSummary") or {}

    def list_market_deals(self) -> List[Any]:
        return self.call("MarketListDeals") or []

    def list_retrieval_deals(self) -> List[Any]:
        return self.call("MarketListRetrievalDeals") or []

    def get_worker_stats(self) -> Dict[str, Dict[str, Any]]:
        return self.call("WorkerStats") or {}

    def get_worker_jobs(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.call("WorkerJobs") or {}

    def list_storage_devices(self) -> Dict[str, List[Dict[str, Any]]]:
        """Storage IDs mapped to the sector declarations stored on each."""
        return self.call("StorageList") or {}

    def get_storage_stats(self, storage_id: str) -> Dict[str, Any]:
        return self.call("StorageStat", storage_id) or {}

    def get_storage_info(self, storage_id: str) -> Dict[str, Any]:
        return self.call("StorageInfo", storage_id) or {}
