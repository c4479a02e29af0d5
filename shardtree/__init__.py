"""Sharded key/value maps with adversary-resistant routing, load statistics and hotspot prediction."""

__version__ = "0.1.0"

__all__ = [
    "router",
    "load_stats",
    "predictor",
    "shard_manager",
    "distributed",
    "sharded_tree",
]