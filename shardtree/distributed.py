"""Hooks that let a sharded tree spread its shards over several nodes."""

from __future__ import annotations

from typing import Any, Callable, Hashable, Optional

RemoteInsert = Callable[[int, Hashable, Any], bool]
RemoteGet = Callable[[int, Hashable], Optional[Any]]
RemoteRemove = Callable[[int, Hashable], bool]
HealthCheck = Callable[[int], bool]


class DistributedHooks:
    """Assign shards to nodes and delegate remote work to callbacks.

    Callbacks left unset make remote operations fail: inserts and removes
    return ``False`` and lookups return ``None``.
    """

    def __init__(
        self,
        insert_handler: Optional[RemoteInsert] = None,
        get_handler: Optional[RemoteGet] = None,
        remove_handler: Optional[RemoteRemove] = None,
        health_check: Optional[HealthCheck] = None,
    ) -> None:
        self.insert_handler = insert_handler
        self.get_handler = get_handler
        self.remove_handler = remove_handler
        self.health_check = health_check
        self._local_node_id = 0
        self._total_nodes = 1
        self._distributed = False

    @property
    def is_distributed(self) -> bool:
        """Whether distributed mode has been enabled."""
        return self._distributed

    @property
    def local_node_id(self) -> int:
        """Identifier of the node this instance runs on."""
        return self._local_node_id

    @property
    def total_nodes(self) -> int:
        """Number of nodes in the cluster."""
        return self._total_nodes

    def enable_distributed_mode(self, node_id: int, total_nodes: int) -> None:
        """Switch to distributed mode as ``node_id`` of ``total_nodes``."""
        if total_nodes < 1:
            raise ValueError("total_nodes must be at least 1")
        if not 0 <= node_id < total_nodes:
            raise ValueError("node_id must be below total_nodes")
        self._local_node_id = node_id
        self._total_nodes = total_nodes
        self._distributed = True

    def node_for_shard(self, shard_idx: int, total_shards: int) -> int:
        """Node owning ``shard_idx``; shards are split in contiguous blocks."""
        if not self._distributed:
            return self._local_node_id
        if total_shards < 1:
            raise ValueError("total_shards must be at least 1")
        shards_per_node = -(-total_shards // self._total_nodes)
        return shard_idx // shards_per_node

    def is_local_shard(self, shard_idx: int, total_shards: int) -> bool:
        """Whether this node owns ``shard_idx``."""
        return self.node_for_shard(shard_idx, total_shards) == self._local_node_id

    def remote_insert(self, node_id: int, key: Hashable, value: Any) -> bool:
        """Insert on ``node_id`` through the insert handler."""
        if self.insert_handler is None:
            return False
        return self.insert_handler(node_id, key, value)

    def remote_get(self, node_id: int, key: Hashable) -> Optional[Any]:
        """Look ``key`` up on ``node_id`` through the get handler."""
        if self.get_handler is None:
            return None
        return self.get_handler(node_id, key)

    def remote_remove(self, node_id: int, key: Hashable) -> bool:
        """Remove ``key`` on ``node_id`` through the remove handler."""
        if self.remove_handler is None:
            return False
        return self.remove_handler(node_id, key)

    def is_node_healthy(self, node_id: int) -> bool:
        """Ask the health check; without one only the local node is healthy."""
        if self.health_check is None:
            return node_id == self._local_node_id
        return self.health_check(node_id)