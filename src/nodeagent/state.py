"""Shared node state: identity plus the latest utilization snapshot."""

import logging
import platform
import socket
import threading

from nodeagent.counters import CounterSource
from nodeagent.models import NodeIdentity, UtilizationSnapshot

log = logging.getLogger(__name__)


class NodeState:
    """
    Latest known snapshot of the node.

    The sampler is the only writer; it swaps in fully built snapshots via
    replace(). Readers call current() and get a complete, immutable snapshot,
    never one that is half updated.
    """

    def __init__(self, identity: NodeIdentity, snapshot: UtilizationSnapshot) -> None:
        if snapshot.core_count != identity.core_count:
            raise ValueError(
                f"snapshot has {snapshot.core_count} cores, identity has {identity.core_count}"
            )
        self._identity = identity
        self._snapshot = snapshot
        self._lock = threading.Lock()

    @property
    def identity(self) -> NodeIdentity:
        return self._identity

    def current(self) -> UtilizationSnapshot:
        with self._lock:
            return self._snapshot

    def replace(self, snapshot: UtilizationSnapshot) -> None:
        """Atomically swap in a new snapshot."""
        if snapshot.core_count != self._identity.core_count:
            raise ValueError(
                f"snapshot has {snapshot.core_count} cores, identity has {self._identity.core_count}"
            )
        with self._lock:
            self._snapshot = snapshot


def discover_identity(node_id: str, cluster_id: str, source: CounterSource) -> NodeIdentity:
    """Collect the static node facts once at startup."""
    identity = NodeIdentity(
        node_id=node_id,
        cluster_id=cluster_id,
        core_count=source.core_count(),
        host_name=socket.gethostname(),
        os_name=platform.platform(),
    )
    log.info(
        "Node %s (cluster %s) on %s: %d cores, %s",
        identity.node_id,
        identity.cluster_id,
        identity.host_name,
        identity.core_count,
        identity.os_name,
    )
    return identity
