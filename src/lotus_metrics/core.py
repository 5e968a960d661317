from __future__ import annotations

import json
import logging
import queue
import threading
import time
from typing import Dict, List, Optional, Tuple

import jsonschema

from .accumulator import Accumulator
from .config import LotusConfig
from .fetchers import DaemonFetcher, MinerFetcher
from .normalize import Normalizer
from .rpc import MinerClient, NodeClient
from .types import (
    ConversionError,
    CycleResult,
    DaemonSnapshot,
    FetchError,
    MinerSnapshot,
)

logger = logging.getLogger(__name__)

COLLECTOR_NAME = "lotus"
COLLECTOR_VERSION = "0.1.0"


def validate_output(instance: Dict, schema_path: str) -> None:
    with open(schema_path, "r", encoding="utf-8") as f:
        schema = json.load(f)
    jsonschema.validate(instance=instance, schema=schema)


def bundled_schema_path() -> str:
    import importlib.resources as ir
    with ir.as_file(ir.files(__package__) / "data" / "lotus_metrics.schema.json") as p:
        return str(p)


def _run_fetch(fetcher, done: queue.Queue) -> None:
    try:
        done.put((fetcher.NAME, fetcher.fetch(), None))
    except Exception as e:
        # re-raised or reported by the polling thread
        done.put((fetcher.NAME, None, e))


class Collector:
    """Runs one polling cycle against the configured daemon and miner.

    Either fetcher may be None (not configured); its side of the cycle is
    then simply left out.
    """

    def __init__(
        self,
        daemon: Optional[DaemonFetcher] = None,
        miner: Optional[MinerFetcher] = None,
        normalizer: Optional[Normalizer] = None,
        cycle_timeout: Optional[float] = None,
    ):
        self.daemon = daemon
        self.miner = miner
        self.normalizer = normalizer or Normalizer()
        self.cycle_timeout = cycle_timeout

    @classmethod
    def from_config(cls, config: LotusConfig) -> 'Collector':
        daemon = miner = None
        if config.daemon_enabled:
            daemon = DaemonFetcher(NodeClient(config.daemon_url, config.daemon_token, config.timeout))
        if config.miner_enabled:
            miner = MinerFetcher(
                MinerClient(config.miner_url, config.miner_token, config.timeout),
                storage_concurrency=config.storage_concurrency,
            )
        return cls(daemon=daemon, miner=miner, cycle_timeout=config.cycle_timeout)

    def collect(self) -> Tuple[Optional[DaemonSnapshot], Optional[MinerSnapshot]]:
        daemon, miner, _ = self._collect()
        return daemon, miner

    def _collect(self) -> Tuple[Optional[DaemonSnapshot], Optional[MinerSnapshot], List[str]]:
        fetchers = [f for f in (self.daemon, self.miner) if f is not None]
        results: Dict[str, object] = {}
        errors: List[str] = []
        if not fetchers:
            return None, None, errors

        # Daemon threads: a fetch abandoned at the deadline must not hold up
        # interpreter exit.
        done: queue.Queue = queue.Queue()
        for fetcher in fetchers:
            threading.Thread(
                target=_run_fetch,
                args=(fetcher, done),
                name=f"fetch-{fetcher.NAME}",
                daemon=True,
            ).start()

        deadline = None if self.cycle_timeout is None else time.monotonic() + self.cycle_timeout
        pending = {f.NAME for f in fetchers}
        while pending:
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                break
            try:
                name, snapshot, exc = done.get(timeout=remaining)
            except queue.Empty:
                break
            pending.discard(name)
            if exc is None:
                results[name] = snapshot
            elif isinstance(exc, FetchError):
                logger.warning("fetching %s failed: %s", name, exc)
                errors.append(f"{name}: {exc}")
            elif isinstance(exc, ConversionError):
                logger.critical("fetching %s: %s", name, exc)
                raise exc
            else:
                raise exc

        for fetcher in fetchers:
            if fetcher.NAME in pending:
                msg = f"{fetcher.NAME}: fetch timed out after {self.cycle_timeout}s"
                logger.warning(msg)
                errors.append(msg)

        miner = results.get(MinerFetcher.NAME)
        if miner is not None:
            errors.extend(f"{MinerFetcher.NAME}: {call}: {msg}" for call, msg in miner.errors.items())
        return results.get(DaemonFetcher.NAME), miner, errors

    def gather(self, acc: Accumulator) -> CycleResult:
        """Run one cycle and push its records into `acc`.

        Raises:
            ConversionError: the wallet balance couldn't be converted.
        """
        daemon, miner, errors = self._collect()
        records = self.normalizer.normalize(daemon, miner)
        for record in records:
            acc.add_record(record)

        configured = [f for f in (self.daemon, self.miner) if f is not None]
        fetched = [s for s in (daemon, miner) if s is not None]
        result = CycleResult.create(
            collector_name=COLLECTOR_NAME,
            collector_version=COLLECTOR_VERSION,
            records=records,
            errors=errors,
            failed=bool(configured) and not fetched,
        )
        logger.info("cycle %s: %d records, %d errors", result.metadata.status, len(records), len(errors))
        return result
