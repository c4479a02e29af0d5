import itertools
import random

import pytest

from shardtree.router import (
    AdversaryResistantRouter,
    RouterStats,
    Strategy,
    mix_hash,
    robust_hash,
    std_hash,
)


class _StepClock:
    def __init__(self, step):
        self.now = 0.0
        self.step = step

    def __call__(self):
        self.now += self.step
        return self.now


def _key_for_shard(shard, num_shards):
    return next(k for k in itertools.count() if robust_hash(k) % num_shards == shard)


def _fill(router, loads):
    for shard, count in enumerate(loads):
        for _ in range(count):
            router.record_insertion(shard)


def test_std_hash_is_identity_for_ints():
    assert std_hash(42) == 42
    assert std_hash(0) == 0


def test_std_hash_wraps_negative_ints_to_64_bits():
    assert std_hash(-1) == (1 << 64) - 1


def test_std_hash_strings_deterministic_and_distinct():
    assert std_hash("alpha") == std_hash("alpha")
    assert std_hash("alpha") != std_hash("beta")
    assert std_hash(b"alpha") == std_hash("alpha")


def test_hashes_of_zero_are_zero():
    assert mix_hash(0) == 0
    assert robust_hash(0) == 0


@pytest.mark.parametrize("key", [1, 7, 12345, 2**40, "key"])
def test_hashes_fit_in_64_bits(key):
    for fn in (std_hash, mix_hash, robust_hash):
        value = fn(key)
        assert 0 <= value < 2**64


def test_robust_hash_scrambles_sequential_keys():
    hashes = {robust_hash(k) % 8 for k in range(64)}
    assert len(hashes) > 1


def test_rejects_zero_shards():
    with pytest.raises(ValueError):
        AdversaryResistantRouter(0)


def test_static_hash_routes_by_robust_hash():
    router = AdversaryResistantRouter(8, Strategy.STATIC_HASH)
    for key in range(100):
        assert router.route(key) == robust_hash(key) % 8


def test_empty_stats():
    router = AdversaryResistantRouter(4, Strategy.STATIC_HASH)
    stats = router.get_stats()
    assert isinstance(stats, RouterStats)
    assert stats.total_load == 0
    assert stats.min_load == 0
    assert stats.max_load == 0
    assert stats.balance_score == 1.0
    assert stats.has_hotspot is False
    assert stats.suspicious_patterns == 0
    assert stats.blocked_redirects == 0


def test_balanced_stats():
    router = AdversaryResistantRouter(4, Strategy.STATIC_HASH)
    _fill(router, [5, 5, 5, 5])
    stats = router.get_stats()
    assert stats.total_load == 20
    assert stats.avg_load == 5.0
    assert stats.balance_score == pytest.approx(1.0)
    assert stats.has_hotspot is False


def test_single_hot_shard_is_hotspot():
    router = AdversaryResistantRouter(4, Strategy.STATIC_HASH)
    _fill(router, [8, 0, 0, 0])
    stats = router.get_stats()
    assert stats.max_load == 8
    assert stats.min_load == 0
    assert stats.has_hotspot is True
    assert stats.balance_score == 0.0


def test_removal_never_goes_negative():
    router = AdversaryResistantRouter(2, Strategy.STATIC_HASH)
    router.record_insertion(0)
    router.record_removal(0)
    router.record_removal(0)
    router.record_removal(1)
    stats = router.get_stats()
    assert stats.total_load == 0
    assert stats.min_load == 0


def test_out_of_range_shard_raises():
    router = AdversaryResistantRouter(2, Strategy.STATIC_HASH)
    with pytest.raises(IndexError):
        router.record_insertion(2)
    with pytest.raises(IndexError):
        router.record_removal(-1)


def test_load_aware_keeps_natural_shard_when_balanced():
    router = AdversaryResistantRouter(4, Strategy.LOAD_AWARE)
    _fill(router, [3, 3, 3, 3])
    for key in range(50):
        assert router.route(key) == robust_hash(key) % 4


def test_load_aware_redirects_to_least_loaded():
    router = AdversaryResistantRouter(4, Strategy.LOAD_AWARE, clock=_StepClock(1.0))
    hot = 1
    cold = 3
    loads = [5, 10, 5, 0]
    _fill(router, loads)
    key = _key_for_shard(hot, 4)
    assert router.route(key) == cold


def test_repeated_redirects_within_cooldown_get_blocked():
    router = AdversaryResistantRouter(4, Strategy.LOAD_AWARE, clock=lambda: 5.0)
    _fill(router, [5, 10, 5, 0])
    key = _key_for_shard(1, 4)
    results = [router.route(key) for _ in range(4)]
    assert results[:3] == [3, 3, 3]
    assert results[3] == 1
    stats = router.get_stats()
    assert stats.suspicious_patterns == 1
    assert stats.blocked_redirects == 1


def test_redirects_spaced_past_cooldown_are_not_blocked():
    router = AdversaryResistantRouter(4, Strategy.LOAD_AWARE, clock=_StepClock(0.5))
    _fill(router, [5, 10, 5, 0])
    key = _key_for_shard(1, 4)
    results = [router.route(key) for _ in range(10)]
    assert results == [3] * 10
    assert router.get_stats().blocked_redirects == 0


def test_consistent_hash_routes_in_range_and_spreads():
    router = AdversaryResistantRouter(8, Strategy.CONSISTENT_HASH, clock=_StepClock(1.0))
    rng = random.Random(7)
    keys = [rng.getrandbits(64) for _ in range(500)]
    shards = [router.route(k) for k in keys]
    assert all(0 <= s < 8 for s in shards)
    assert len(set(shards)) > 1
    assert [router.route(k) for k in keys] == shards


def test_virtual_nodes_matches_consistent_hash():
    clock = _StepClock(1.0)
    a = AdversaryResistantRouter(8, Strategy.CONSISTENT_HASH, clock=clock)
    b = AdversaryResistantRouter(8, Strategy.VIRTUAL_NODES, clock=clock)
    rng = random.Random(3)
    for _ in range(200):
        key = rng.getrandbits(64)
        assert a.route(key) == b.route(key)


def test_consistent_hash_ignores_load():
    router = AdversaryResistantRouter(4, Strategy.CONSISTENT_HASH, clock=_StepClock(1.0))
    keys = list(range(0, 2**63, 2**58))
    before = [router.route(k) for k in keys]
    _fill(router, [100, 0, 0, 0])
    assert [router.route(k) for k in keys] == before


def test_intelligent_uses_natural_shard_when_balanced():
    router = AdversaryResistantRouter(4, Strategy.INTELLIGENT, clock=_StepClock(1.0))
    _fill(router, [10, 10, 10, 10])
    for key in range(100):
        assert router.route(key) == robust_hash(key) % 4


def test_intelligent_switches_to_load_aware_under_hotspot():
    router = AdversaryResistantRouter(4, Strategy.INTELLIGENT, clock=_StepClock(1.0))
    _fill(router, [5, 10, 5, 0])
    key = _key_for_shard(1, 4)
    results = [router.route(key) for _ in range(20)]
    assert results[0] == 1
    assert results[-1] == 3
    assert router.get_stats().blocked_redirects == 0


def test_routes_always_in_range_for_every_strategy():
    for strategy in Strategy:
        router = AdversaryResistantRouter(5, strategy, seed=1, clock=_StepClock(1.0))
        _fill(router, [20, 0, 1, 2, 3])
        for key in range(200):
            assert 0 <= router.route(key) < 5
        assert router.get_stats().total_load == 26