from __future__ import annotations

import copy
from typing import Dict, Iterable, Optional

import pytest

WORKER_A = "6f1a3c52-2d1b-4c7e-9b0e-3f2a8d5c1e01"
WORKER_B = "0b9e7d44-8f3a-4a1c-b2d6-7c5e9f1a2b03"
STORAGE_1 = "b3c1a2d4-1111-4e5f-8a9b-0c1d2e3f4a5b"
STORAGE_2 = "d5e6f7a8-2222-4b3c-9d0e-1f2a3b4c5d6e"

ADDR_1 = "f1abjxfbp274xpdqcpuaykwkfb43omjotacm2p3za"
ADDR_2 = "f3vvmn62lofvhjd2ugzca6sof2j2ubwok6cj4xxbfzz4yuxfkgobpihhd2thlanmsh3w2ptld2gqkn2jvlss4a"

NODE_STATUS = {
    "SyncStatus": {"Epoch": 12345, "Behind": 0},
    "PeerStatus": {"PeersToPublishMsgs": 20, "PeersToPublishBlocks": 18},
    "ChainStatus": {"BlocksPerTipsetLast100": 4.6, "BlocksPerTipsetLastFinality": 4.7},
}

BALANCES = {
    ADDR_1: "1000000000000000000",
    ADDR_2: "2000000000000000000",
}

WORKER_STATS = {
    WORKER_A: {
        "Info": {
            "Hostname": "sealer-01",
            "Resources": {
                "MemPhysical": 274877906944,
                "MemUsed": 2147483648,
                "MemSwap": 17179869184,
                "CPUs": 64,
                "GPUs": ["GeForce RTX 3090"],
            },
        },
        "Enabled": True,
        "MemUsedMin": 0,
        "MemUsedMax": 0,
        "GpuUsed": True,
        "CpuUse": 16,
    },
}

WORKER_JOBS = {
    WORKER_A: [
        {
            "ID": {"Sector": {"Miner": 1000, "Number": 7}, "ID": "c0ffee00-0000-4000-8000-000000000007"},
            "Sector": {"Miner": 1000, "Number": 7},
            "Task": "seal/v0/precommit/1",
            "RunWait": 0,
            "Start": "2021-03-04T10:11:12.123456789Z",
            "Hostname": "sealer-01",
        },
    ],
}

STORAGE_LIST = {
    STORAGE_1: [
        {"Miner": 1000, "Number": 1, "SectorFileType": 2},
        {"Miner": 1000, "Number": 2, "SectorFileType": 2},
    ],
    STORAGE_2: [],
}

STORAGE_STAT = {
    STORAGE_1: {"Capacity": 1000, "Available": 400, "FSAvailable": 450, "Reserved": 50, "Max": 900, "Used": 500},
    STORAGE_2: {"Capacity": 2000, "Available": 2000, "FSAvailable": 2000, "Reserved": 0, "Max": 0, "Used": 0},
}

STORAGE_INFO = {
    STORAGE_1: {"ID": STORAGE_1, "URLs": [], "Weight": 10, "MaxStorage": 900, "CanSeal": False, "CanStore": True},
    STORAGE_2: {"ID": STORAGE_2, "URLs": [], "Weight": 5, "MaxStorage": 0, "CanSeal": True, "CanStore": False},
}

RESPONSES = {
    "NodeStatus": NODE_STATUS,
    "WalletList": list(BALANCES),
    "WalletBalance": BALANCES,
    "SectorsSummary": {"Proving": 3, "Faulty": 1},
    "MarketListDeals": [{"Proposal": {"PieceSize": 2048}}, {"Proposal": {"PieceSize": 4096}}],
    "MarketListRetrievalDeals": [{"Status": 10}],
    "WorkerStats": WORKER_STATS,
    "WorkerJobs": WORKER_JOBS,
    "StorageList": STORAGE_LIST,
    "StorageStat": STORAGE_STAT,
    "StorageInfo": STORAGE_INFO,
}

# Calls whose single parameter selects an entry of the canned response.
KEYED = ("WalletBalance", "StorageStat", "StorageInfo")


def make_jsonrpc(overrides: Optional[Dict] = None, failing: Iterable = ()):
    """Build a stand-in for `lotus_metrics.rpc._jsonrpc`.

    `failing` holds method names ("MarketListDeals") or (method, param)
    pairs (("StorageStat", STORAGE_1)) that should return an RPC error.
    """
    responses = copy.deepcopy(RESPONSES)
    responses.update(overrides or {})
    failing = set(failing)

    def _mock_jsonrpc(url: str, method: str, params=None, token: str = "", timeout: float = 5.0):
        name = method.split(".", 1)[1]
        param = params[0] if params else None
        if name in failing or (name, param) in failing:
            return None, f"rpc {method} error: {{'code': 1, 'message': 'boom'}}"
        if name not in responses:
            return None, f"unexpected method {method}"
        if name in KEYED:
            if param not in responses[name]:
                return None, f"rpc {method} error: not found"
            return responses[name][param], None
        return responses[name], None

    return _mock_jsonrpc


@pytest.fixture
def lotus_env() -> Dict[str, str]:
    return {
        "LOTUS_DAEMON_TOKEN": "daemon-token",
        "LOTUS_MINER_TOKEN": "miner-token",
    }
