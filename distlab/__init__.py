"""Simulated RPC, serialisation, key/value history models and sequential MapReduce tools."""

__version__ = "0.1.0"

__all__ = [
    "apps",
    "kvtest",
    "kvtypes",
    "labgob",
    "labrpc",
    "mapreduce",
    "models",
    "oplog",
    "sequential",
]