import pytest

from shardtree.distributed import DistributedHooks


def test_local_mode_owns_every_shard():
    hooks = DistributedHooks()
    assert hooks.is_distributed is False
    assert all(hooks.node_for_shard(s, 8) == 0 for s in range(8))
    assert all(hooks.is_local_shard(s, 8) for s in range(8))


def test_enable_distributed_mode_sets_identity():
    hooks = DistributedHooks()
    hooks.enable_distributed_mode(1, 3)
    assert hooks.is_distributed is True
    assert hooks.local_node_id == 1
    assert hooks.total_nodes == 3


def test_shards_split_into_contiguous_blocks():
    hooks = DistributedHooks()
    hooks.enable_distributed_mode(0, 2)
    owners = [hooks.node_for_shard(s, 8) for s in range(8)]
    assert owners == sorted(owners)
    assert owners.count(0) == owners.count(1)
    assert set(owners) == {0, 1}


def test_uneven_split_covers_all_nodes_in_range():
    hooks = DistributedHooks()
    hooks.enable_distributed_mode(2, 3)
    owners = [hooks.node_for_shard(s, 7) for s in range(7)]
    assert all(0 <= o < 3 for o in owners)
    assert owners == sorted(owners)
    local = [s for s in range(7) if hooks.is_local_shard(s, 7)]
    assert local == [s for s, o in enumerate(owners) if o == 2]


@pytest.mark.parametrize("node_id, total", [(0, 0), (3, 3), (-1, 2)])
def test_invalid_cluster_rejected(node_id, total):
    with pytest.raises(ValueError):
        DistributedHooks().enable_distributed_mode(node_id, total)


def test_zero_shards_rejected_in_distributed_mode():
    hooks = DistributedHooks()
    hooks.enable_distributed_mode(0, 2)
    with pytest.raises(ValueError):
        hooks.node_for_shard(0, 0)


def test_remote_operations_without_handlers():
    hooks = DistributedHooks()
    assert hooks.remote_insert(1, "k", "v") is False
    assert hooks.remote_get(1, "k") is None
    assert hooks.remote_remove(1, "k") is False


def test_remote_operations_delegate_to_handlers():
    store = {}
    calls = []

    def insert(node, key, value):
        calls.append(("insert", node))
        store[key] = value
        return True

    def get(node, key):
        calls.append(("get", node))
        return store.get(key)

    def remove(node, key):
        calls.append(("remove", node))
        return store.pop(key, None) is not None

    hooks = DistributedHooks(insert, get, remove)
    assert hooks.remote_insert(2, "k", 10) is True
    assert hooks.remote_get(2, "k") == 10
    assert hooks.remote_remove(2, "k") is True
    assert hooks.remote_remove(2, "k") is False
    assert calls == [("insert", 2), ("get", 2), ("remove", 2), ("remove", 2)]


def test_default_health_only_local_node():
    hooks = DistributedHooks()
    hooks.enable_distributed_mode(1, 2)
    assert hooks.is_node_healthy(1) is True
    assert hooks.is_node_healthy(0) is False


def test_health_check_handler_used():
    hooks = DistributedHooks(health_check=lambda node: node % 2 == 0)
    assert hooks.is_node_healthy(4) is True
    assert hooks.is_node_healthy(3) is False


def test_handlers_can_be_assigned_later():
    hooks = DistributedHooks()
    hooks.get_handler = lambda node, key: (node, key)
    assert hooks.remote_get(5, "x") == (5, "x")