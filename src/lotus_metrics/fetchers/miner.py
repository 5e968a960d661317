from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from ..config import DEFAULT_STORAGE_CONCURRENCY
from ..rpc import MinerClient
from ..types import (
    MinerSnapshot,
    StorageInfo,
    StorageStats,
    TransportError,
    WorkerJob,
    WorkerStats,
)
from .fetcher_base import FetcherBase

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures that degrade a single field instead of the whole snapshot:
# transport problems and response shapes we couldn't decode.
ISOLATED_ERRORS = (TransportError, ValueError, TypeError, KeyError, AttributeError)


class MinerFetcher(FetcherBase):
    """Fetches sealing, deal and storage state from a storage miner.

    Every remote call is isolated: when one fails its error is logged and
    recorded in `MinerSnapshot.errors`, and the matching field is left
    empty, so one degraded subsystem doesn't hide the others.
    """

    NAME = "miner"
    VERSION = "0.1.0"

    def __init__(self, client: MinerClient, storage_concurrency: int = DEFAULT_STORAGE_CONCURRENCY):
        super().__init__(client)
        self.storage_concurrency = max(1, storage_concurrency)

    def _isolated(self, errors: Dict[str, str], name: str, fn: Callable[[], T], default: T) -> T:
        try:
            return fn()
        except ISOLATED_ERRORS as e:
            logger.warning("calling %s: %s", name, e)
            errors[name] = str(e)
            return default

    def fetch(self) -> MinerSnapshot:
        errors: Dict[str, str] = {}
        c = self.client

        sector_summary = self._isolated(
            errors, "SectorsSummary",
            lambda: {str(k): int(v) for k, v in c.get_sector_state_summary().items()}, {})
        market_deals = self._isolated(errors, "MarketListDeals", lambda: _as_list(c.list_market_deals()), [])
        retrieval_deals = self._isolated(
            errors, "MarketListRetrievalDeals", lambda: _as_list(c.list_retrieval_deals()), [])
        worker_stats = self._isolated(
            errors, "WorkerStats",
            lambda: {uuid.UUID(k): WorkerStats.from_json(v) for k, v in c.get_worker_stats().items()}, {})
        worker_jobs = self._isolated(
            errors, "WorkerJobs",
            lambda: {uuid.UUID(k): [WorkerJob.from_json(j) for j in (v or [])]
                     for k, v in c.get_worker_jobs().items()}, {})
        storage_sectors = self._isolated(
            errors, "StorageList",
            lambda: {str(k): _sector_numbers(v) for k, v in c.list_storage_devices().items()}, None)

        storage_stats: Dict[str, StorageStats] = {}
        storage_info: Dict[str, StorageInfo] = {}
        if storage_sectors:
            for storage_id, stat, info, errs in self._fetch_storage(list(storage_sectors)):
                storage_stats[storage_id] = stat
                storage_info[storage_id] = info
                errors.update(errs)

        snapshot = MinerSnapshot(
            sector_summary=sector_summary,
            market_deals=market_deals,
            retrieval_deals=retrieval_deals,
            worker_stats=worker_stats,
            worker_jobs=worker_jobs,
            storage_stats=storage_stats,
            storage_info=storage_info,
            storage_sectors=storage_sectors,
            errors=errors,
        )
        logger.debug("miner snapshot: %d sector states, %d workers, %d storage paths, %d errors",
                     len(sector_summary), len(worker_stats), len(storage_stats), len(errors))
        return snapshot

    def _fetch_storage(self, storage_ids: List[str]) -> List[Tuple[str, StorageStats, StorageInfo, Dict[str, str]]]:
        workers = min(self.storage_concurrency, len(storage_ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="storage-stat") as pool:
            return list(pool.map(self._fetch_one_storage, storage_ids))

    def _fetch_one_storage(self, storage_id: str) -> Tuple[str, StorageStats, StorageInfo, Dict[str, str]]:
        errors: Dict[str, str] = {}
        stat = self._isolated(
            errors, f"StorageStat({storage_id})",
            lambda: StorageStats.from_json(self.client.get_storage_stats(storage_id)), StorageStats())
        info = self._isolated(
            errors, f"StorageInfo({storage_id})",
            lambda: StorageInfo.from_json(self.client.get_storage_info(storage_id)), StorageInfo())
        return storage_id, stat, info, errors


def _as_list(value: Any) -> List[Any]:
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return value


def _sector_numbers(decls: Optional[List[Dict[str, Any]]]) -> List[int]:
    numbers = []
    for decl in decls or []:
        # abi.SectorID is embedded in the declaration, but accept it nested too
        sector = decl.get("SectorID", decl)
        numbers.append(int(sector["Number"]))
    return numbers
