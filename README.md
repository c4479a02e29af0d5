# shardtree

Sharded key/value structures for Python, with the routing machinery that
decides which shard a key lands on. There are no third-party dependencies.

## Modules

- `shardtree.router.AdversaryResistantRouter` maps keys to shards with one of
  the strategies in `shardtree.router.Strategy`. These are static hash,
  load-aware redirection, consistent hashing over virtual nodes, and an
  adaptive "intelligent" mix. Some keys get redirected more than three times
  within a 100 ms cooldown. Those keys are counted as suspicious and stay
  pinned to their natural shard. `record_insertion()` and `record_removal()`
  keep the per-shard loads. `get_stats()` returns a `RouterStats` with the
  balance score, the hotspot flag, and the suspicious and blocked counts. The
  module also exports the hash functions `std_hash`, `mix_hash` and
  `robust_hash`.
- `shardtree.load_stats.CachedLoadStats` keeps per-shard load counters. It
  also caches their minimum, maximum and total. You can refresh the cache by
  hand with `refresh()`, or let a background thread do it with `start()` and
  `stop()`. The object also works as a context manager.
- `shardtree.predictor.HotspotPredictor` keeps an exponential moving average
  of each shard's access rate. `predict_hotspot()` returns a `Prediction`.
  `coolest_shard()` names the shard least likely to run hot.
- `shardtree.shard_manager.DynamicShardManager` is a consistent-hash ring
  that grows one shard at a time with `add_shard()`. It has a redirect index
  for migrated keys and a `check_migration()` that returns a `MigrationCheck`.
- `shardtree.distributed.DistributedHooks` assigns shards to nodes in
  contiguous blocks. It hands remote inserts, lookups, removals and health
  checks to callbacks that you supply.
- `shardtree.sharded_tree.ParallelTreeV2` is the sharded map itself. Each
  shard has its own lock. Routing goes through a `DynamicShardManager`. With
  `RoutingStrategy.PREDICTIVE`, inserts bound for a shard predicted to run hot
  go to the coolest shard instead. Shards can be added at run time. The map
  reports its state through `shard_stats()`, `architecture_info()` and
  `format_distribution()`.

## Installation

```
pip install .
```

## Example

```python
from shardtree.sharded_tree import ParallelTreeV2

tree = ParallelTreeV2(4)
for key in range(1000):
    tree.insert(key, key * 10)

assert tree.contains(42)
assert tree.get(42) == 420

tree.add_shard()
info = tree.architecture_info()
print(info.num_shards, info.total_elements, info.load_balance_score)
print(tree.format_distribution())
```

Routing under an attack that forces every key to one shard:

```python
from shardtree.router import AdversaryResistantRouter, Strategy

router = AdversaryResistantRouter(8, Strategy.LOAD_AWARE)
for key in range(0, 8000, 8):
    router.record_insertion(router.route(key))

stats = router.get_stats()
print(stats.balance_score, stats.has_hotspot, stats.blocked_redirects)
```

## What it does not do

- This is a library only. It installs no command and no benchmark, and it
  ships no key-workload generators.
- `ParallelTreeV2.add_shard()` changes the routing ring but moves no existing
  keys. A key that now routes to a different shard is not found there until
  you move it yourself.
- `DistributedHooks` does no networking of its own. Remote operations only
  call the callbacks you give it.
- Nothing is persisted. Every structure lives in memory.

## Tests

```
pip install .[test]
pytest
```