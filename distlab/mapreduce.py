"""Shared MapReduce types and the key partitioning hash."""

from __future__ import annotations

from dataclasses import dataclass

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193
_MASK32 = 0xFFFFFFFF


@dataclass(frozen=True)
class KeyValue:
    """One intermediate pair emitted by a map function."""

    key: str
    value: str


@dataclass
class ExampleArgs:
    x: int = 0


@dataclass
class ExampleReply:
    y: int = 0


def ihash(key: str) -> int:
    """Non-negative 32-bit FNV-1a hash of ``key``; use ``ihash(k) % n_reduce``."""
    h = _FNV32_OFFSET
    for byte in key.encode("utf-8"):
        h = ((h ^ byte) * _FNV32_PRIME) & _MASK32
    return h & 0x7FFFFFFF