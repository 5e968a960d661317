"""Fetchers turning Lotus API calls into per-poll snapshots."""
# Base class
from .fetcher_base import FetcherBase

# Concrete fetchers
from .daemon import DaemonFetcher, NODE_STATUS_INCLUDE_CHAIN
from .miner import MinerFetcher

# What this package exports
__all__ = [
    "FetcherBase",
    "DaemonFetcher",
    "MinerFetcher",
    "NODE_STATUS_INCLUDE_CHAIN",
]
