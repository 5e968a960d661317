"""Flatten daemon and miner snapshots into metric records.

Measurements:

* ``lotus``: one overview record per cycle (chain, peers, balance, deals,
  sector counts per state plus ``sectorsTotal``).
* ``lotus_sealing_worker``: one per worker, tagged ``workerId``/``hostname``.
* ``lotus_sealing_job``: one per running job, tagged with the job, its
  worker, the worker's host name and the sector it works on.
* ``lotus_storage``: one per storage path, tagged ``storageId``.

Records within a measurement come out in no particular order.
"""
from __future__ import annotations

import logging
import uuid
from typing import Dict, Iterator, List, Optional

from .balance import BalanceReducer
from .types import (
    ConversionError,
    DaemonSnapshot,
    FieldValue,
    MetricRecord,
    MinerSnapshot,
    StorageInfo,
    WorkerStats,
)

logger = logging.getLogger(__name__)

LOTUS_MEASUREMENT = "lotus"
WORKER_MEASUREMENT = "lotus_sealing_worker"
JOB_MEASUREMENT = "lotus_sealing_job"
STORAGE_MEASUREMENT = "lotus_storage"

# sealtasks.TaskType -> TaskType.Short()
TASK_SHORT_NAMES = {
    "seal/v0/addpiece": "AP",
    "seal/v0/precommit/1": "PC1",
    "seal/v0/precommit/2": "PC2",
    "seal/v0/commit/1": "C1",
    "seal/v0/commit/2": "C2",
    "seal/v0/finalize": "FIN",
    "seal/v0/fetch": "GET",
    "seal/v0/unseal": "UNS",
    "seal/v0/unsealread": "RD",
    "seal/v0/replicaupdate": "RU",
    "seal/v0/provereplicaupdate/1": "PR1",
    "seal/v0/provereplicaupdate/2": "PR2",
    "seal/v0/regensectorkey": "GSK",
    "seal/v0/finalize/replicaupdate": "FRU",
    "post/v0/windowproof": "WDP",
    "post/v0/winningproof": "WNP",
}


def short_task(task: str) -> str:
    return TASK_SHORT_NAMES.get(task, "UNK")


def sector_fields(summary: Dict[str, int]) -> Dict[str, int]:
    """Per-state sector counts plus their total, recomputed from `summary`."""
    fields = {f"sectors{state}": count for state, count in summary.items()}
    fields["sectorsTotal"] = sum(summary.values())
    return fields


class Normalizer:
    """Turns one cycle's snapshots into `MetricRecord`s."""

    def __init__(self, reducer: Optional[BalanceReducer] = None):
        self.reducer = reducer or BalanceReducer()

    def normalize(self, daemon: Optional[DaemonSnapshot], miner: Optional[MinerSnapshot]) -> List[MetricRecord]:
        """Build every record for one cycle.

        Raises:
            ConversionError: the daemon balance couldn't be rendered as a float.
        """
        records: List[MetricRecord] = []
        if daemon is not None or miner is not None:
            records.append(self.overview(daemon, miner))
        if miner is not None:
            records.extend(self.explode_miner(miner))
        return records

    def overview(self, daemon: Optional[DaemonSnapshot], miner: Optional[MinerSnapshot]) -> MetricRecord:
        fields: Dict[str, FieldValue] = {}
        if daemon is not None:
            try:
                balance = self.reducer.to_display_unit(daemon.balance)
            except ConversionError:
                logger.critical("wallet balance %r can't be converted, refusing to report it", daemon.balance)
                raise
            fields.update({
                "epoch": daemon.sync.epoch,
                "behind": daemon.sync.behind,
                "messagePeers": daemon.peers.messages,
                "blockPeers": daemon.peers.blocks,
                "balance": balance,
            })
        if miner is not None:
            fields["marketDeals"] = len(miner.market_deals)
            fields["retrievalDeals"] = len(miner.retrieval_deals)
            fields.update(sector_fields(miner.sector_summary))
        return MetricRecord(LOTUS_MEASUREMENT, fields)

    def explode_miner(self, miner: MinerSnapshot) -> Iterator[MetricRecord]:
        # Host names are only valid for this snapshot; never cache them.
        hostnames: Dict[uuid.UUID, str] = {}
        for worker_id, stats in miner.worker_stats.items():
            hostnames[worker_id] = stats.hostname
            yield self.worker_record(worker_id, stats)

        for worker_id, jobs in miner.worker_jobs.items():
            hostname = hostnames.get(worker_id, "")
            for job in jobs:
                yield MetricRecord(
                    JOB_MEASUREMENT,
                    {
                        "runWait": job.run_wait,
                        "start": job.start,
                        "task": short_task(job.task),
                    },
                    {
                        "jobId": job.job_id,
                        "workerId": str(worker_id),
                        "hostname": hostname,
                        "sectorNumber": str(job.sector.number),
                        "minerId": str(job.sector.miner),
                    },
                )

        sectors = miner.storage_sectors or {}
        for storage_id, stat in miner.storage_stats.items():
            info = miner.storage_info.get(storage_id, StorageInfo())
            fields: Dict[str, FieldValue] = {
                "available": stat.available,
                "capacity": stat.capacity,
                "fsAvailable": stat.fs_available,
                "max": stat.max,
                "reserved": stat.reserved,
                "used": stat.used,
                "weight": info.weight,
                "canSeal": info.can_seal,
                "canStore": info.can_store,
            }
            if storage_id in sectors:
                fields["sectorCount"] = len(sectors[storage_id])
                fields["sectors"] = ",".join(str(n) for n in sectors[storage_id])
            yield MetricRecord(STORAGE_MEASUREMENT, fields, {"storageId": storage_id})

    def worker_record(self, worker_id: uuid.UUID, stats: WorkerStats) -> MetricRecord:
        return MetricRecord(
            WORKER_MEASUREMENT,
            {
                "cpuUse": stats.cpu_use,
                "gpuUsed": stats.gpu_used,
                "memPhysical": stats.mem_physical,
                "memUsed": stats.mem_used,
                "memSwap": stats.mem_swap,
                "cpus": stats.cpus,
                "gpus": stats.gpus,
            },
            {"workerId": str(worker_id), "hostname": stats.hostname},
        )
