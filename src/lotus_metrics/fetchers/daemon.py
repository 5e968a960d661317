from __future__ import annotations

import logging
from typing import List, Optional

from ..balance import BalanceReducer
from ..rpc import NodeClient
from ..types import DaemonSnapshot, FetchError, NodeStatus, TransportError
from .fetcher_base import FetcherBase

logger = logging.getLogger(__name__)

# Second argument of Filecoin.NodeStatus: include chain-level detail in the
# response. Only SyncStatus and PeerStatus are read.
NODE_STATUS_INCLUDE_CHAIN = True


class DaemonFetcher(FetcherBase):
    """Fetches sync/peer status and the total wallet balance from a full node."""

    NAME = "daemon"
    VERSION = "0.1.0"

    def __init__(self, client: NodeClient, reducer: Optional[BalanceReducer] = None):
        super().__init__(client)
        self.reducer = reducer or BalanceReducer()

    def fetch(self) -> DaemonSnapshot:
        """Fetch one DaemonSnapshot.

        Raises:
            FetchError: any of the remote calls failed; `sub_call` names it.
        """
        try:
            status = NodeStatus.from_json(self.client.get_sync_status(NODE_STATUS_INCLUDE_CHAIN))
        except (TransportError, ValueError, TypeError, AttributeError) as e:
            raise FetchError("NodeStatus", e) from e

        try:
            addresses: List[str] = self.client.list_wallet_addresses()
        except TransportError as e:
            raise FetchError("WalletList", e) from e

        balances = []
        for addr in addresses:
            try:
                balances.append(self.client.get_balance(addr))
            except TransportError as e:
                raise FetchError(f"WalletBalance({addr})", e) from e

        total = self.reducer.reduce(balances)
        logger.debug("daemon epoch=%s behind=%s wallets=%d balance=%s attoFIL",
                     status.sync.epoch, status.sync.behind, len(addresses), total)
        return DaemonSnapshot(sync=status.sync, peers=status.peers, balance=total)
