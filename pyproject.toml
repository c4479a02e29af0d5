[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "shardtree"
version = "0.1.0"
description = "Sharded key/value maps with adversary-resistant routing, hotspot prediction and dynamic shard scaling"
requires-python = ">=3.10"
dependencies = []
keywords = ["sharding", "routing", "consistent-hashing", "load-balancing", "hotspot", "concurrency"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["shardtree"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
