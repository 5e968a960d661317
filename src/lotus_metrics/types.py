"""Shared type and exception definitions for lotus-metrics."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

FieldValue = Union[int, float, bool, str]


class LotusMetricsError(Exception):
    """Base exception for lotus-metrics errors."""
    pass


class ConfigurationError(LotusMetricsError):
    """Raised when a connection parameter is missing or invalid at setup."""
    pass


class TransportError(LotusMetricsError):
    """Raised when a remote call could not complete."""

    def __init__(self, method: str, message: str):
        self.method = method
        super().__init__(message)


class FetchError(LotusMetricsError):
    """Raised by a fetcher when one of its sub-calls failed."""

    def __init__(self, sub_call: str, cause: Exception):
        self.sub_call = sub_call
        self.cause = cause
        super().__init__(f"{sub_call} failed: {cause}")


class ConversionError(LotusMetricsError):
    """Raised when a balance can't be rendered as a fixed-width number."""
    pass


# ---------- daemon ----------

@dataclass(frozen=True)
class SyncStatus:
    epoch: int = 0
    behind: int = 0


@dataclass(frozen=True)
class PeerStatus:
    messages: int = 0
    blocks: int = 0


@dataclass(frozen=True)
class NodeStatus:
    """Decoded `Filecoin.NodeStatus` response."""
    sync: SyncStatus = field(default_factory=SyncStatus)
    peers: PeerStatus = field(default_factory=PeerStatus)

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> 'NodeStatus':
        sync = raw.get("SyncStatus") or {}
        peers = raw.get("PeerStatus") or {}
        return cls(
            sync=SyncStatus(
                epoch=int(sync.get("Epoch", 0)),
                behind=int(sync.get("Behind", 0)),
            ),
            peers=PeerStatus(
                messages=int(peers.get("PeersToPublishMsgs", 0)),
                blocks=int(peers.get("PeersToPublishBlocks", 0)),
            ),
        )


@dataclass(frozen=True)
class DaemonSnapshot:
    """One poll of the full node. `balance` is the wallet total in attoFIL."""
    sync: SyncStatus = field(default_factory=SyncStatus)
    peers: PeerStatus = field(default_factory=PeerStatus)
    balance: Decimal = Decimal(0)


# ---------- miner ----------

@dataclass(frozen=True)
class WorkerStats:
    hostname: str = ""
    cpu_use: float = 0.0
    gpu_used: bool = False
    mem_physical: int = 0
    mem_used: int = 0
    mem_swap: int = 0
    cpus: int = 0
    gpus: int = 0

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> 'WorkerStats':
        info = raw.get("Info") or {}
        resources = info.get("Resources") or {}
        cpus = int(resources.get("CPUs", 0))
        # CpuUse is the number of cores currently claimed by running tasks
        cpu_use = int(raw.get("CpuUse", 0)) / cpus if cpus else 0.0
        gpu_used = raw.get("GpuUsed", False)
        if not isinstance(gpu_used, bool):
            gpu_used = float(gpu_used) > 0
        return cls(
            hostname=str(info.get("Hostname", "")),
            cpu_use=cpu_use,
            gpu_used=gpu_used,
            mem_physical=int(resources.get("MemPhysical", 0)),
            mem_used=int(resources.get("MemUsed", resources.get("MemReserved", 0))),
            mem_swap=int(resources.get("MemSwap", 0)),
            cpus=cpus,
            gpus=len(resources.get("GPUs") or []),
        )


@dataclass(frozen=True)
class SectorRef:
    miner: int = 0
    number: int = 0

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> 'SectorRef':
        return cls(miner=int(raw.get("Miner", 0)), number=int(raw.get("Number", 0)))


@dataclass(frozen=True)
class WorkerJob:
    job_id: str
    sector: SectorRef
    task: str
    start: str
    run_wait: int = 0

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> 'WorkerJob':
        call_id = raw.get("ID") or {}
        if isinstance(call_id, dict):
            job_id = str(call_id.get("ID", ""))
        else:
            job_id = str(call_id)
        return cls(
            job_id=job_id,
            sector=SectorRef.from_json(raw.get("Sector") or {}),
            task=str(raw.get("Task", "")),
            start=str(raw.get("Start", "")),
            run_wait=int(raw.get("RunWait", 0)),
        )


@dataclass(frozen=True)
class StorageStats:
    """Decoded `Filecoin.StorageStat` (fsutil.FsStat) response."""
    capacity: int = 0
    available: int = 0
    fs_available: int = 0
    max: int = 0
    reserved: int = 0
    used: int = 0

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> 'StorageStats':
        return cls(
            capacity=int(raw.get("Capacity", 0)),
            available=int(raw.get("Available", 0)),
            fs_available=int(raw.get("FSAvailable", 0)),
            max=int(raw.get("Max", 0)),
            reserved=int(raw.get("Reserved", 0)),
            used=int(raw.get("Used", 0)),
        )


@dataclass(frozen=True)
class StorageInfo:
    """Static storage path configuration from `Filecoin.StorageInfo`."""
    weight: int = 0
    can_seal: bool = False
    can_store: bool = False

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> 'StorageInfo':
        return cls(
            weight=int(raw.get("Weight", 0)),
            can_seal=bool(raw.get("CanSeal", False)),
            can_store=bool(raw.get("CanStore", False)),
        )


@dataclass(frozen=True)
class MinerSnapshot:
    """One poll of the storage miner.

    `errors` maps the name of every sub-call that failed during the poll to
    its error message; the matching field holds an empty/zero value.
    """
    sector_summary: Dict[str, int] = field(default_factory=dict)
    market_deals: List[Any] = field(default_factory=list)
    retrieval_deals: List[Any] = field(default_factory=list)
    worker_stats: Dict[uuid.UUID, WorkerStats] = field(default_factory=dict)
    worker_jobs: Dict[uuid.UUID, List[WorkerJob]] = field(default_factory=dict)
    storage_stats: Dict[str, StorageStats] = field(default_factory=dict)
    storage_info: Dict[str, StorageInfo] = field(default_factory=dict)
    storage_sectors: Optional[Dict[str, List[int]]] = None
    errors: Dict[str, str] = field(default_factory=dict)

    def failed(self, sub_call: str) -> bool:
        return sub_call in self.errors


# ---------- output ----------

@dataclass(frozen=True)
class MetricRecord:
    measurement: str
    fields: Dict[str, FieldValue]
    tags: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "measurement": self.measurement,
            "fields": dict(self.fields),
            "tags": dict(self.tags),
        }


@dataclass
class CycleMetadata:
    """Metadata about one polling cycle."""
    collector_name: str
    collector_version: str
    collection_time: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    status: str = "success"
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to a dictionary."""
        return {
            "collector_name": self.collector_name,
            "collector_version": self.collector_version,
            "collection_time": self.collection_time,
            "status": self.status,
            "errors": list(self.errors)
        }


@dataclass
class CycleResult:
    """Result of one polling cycle."""
    metadata: CycleMetadata
    records: List[MetricRecord] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        collector_name: str,
        collector_version: str,
        records: Optional[List[MetricRecord]] = None,
        errors: Optional[List[str]] = None,
        failed: bool = False
    ) -> 'CycleResult':
        """Create a new CycleResult with proper metadata."""
        if failed:
            status = "failed"
        elif errors:
            status = "partial"
        else:
            status = "success"
        metadata = CycleMetadata(
            collector_name=collector_name,
            collector_version=collector_version,
            status=status,
            errors=errors or []
        )
        return cls(metadata=metadata, records=records or [])

    def to_dict(self) -> Dict[str, Any]:
        """Convert the CycleResult to a JSON-serializable dictionary."""
        return {
            "metadata": self.metadata.to_dict(),
            "records": [r.to_dict() for r in self.records]
        }
