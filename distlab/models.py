"""Sequential model of a versioned key/value store for linearizability checks.

Histories are split by key; each key is modelled as a single value with a
version that every successful put advances by one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

GET = 0
PUT = 1

_INVALID = "<invalid>"
_PUT_APPLIED = frozenset({"OK", "ErrMaybe"})
_PUT_REJECTED = frozenset({"ErrVersion", "ErrMaybe"})


@dataclass(frozen=True)
class KvInput:
    op: int
    key: str
    value: str = ""
    version: int = 0


@dataclass(frozen=True)
class KvOutput:
    value: str = ""
    version: int = 0
    err: str = ""


@dataclass(frozen=True)
class KvState:
    value: str = ""
    version: int = 0


@dataclass(frozen=True)
class Operation:
    """One client call with its input, output and time interval."""

    client_id: int
    input: Any
    call: int
    output: Any
    ret: int


def partition(history: list[Operation]) -> list[list[Operation]]:
    """Split a history into per-key histories, ordered by key."""
    groups: dict[str, list[Operation]] = {}
    for op in history:
        groups.setdefault(op.input.key, []).append(op)
    return [groups[key] for key in sorted(groups)]


def init_state() -> KvState:
    """The state of a key that was never written."""
    return KvState("", 0)


def step(state: Any, input: KvInput, output: KvOutput) -> tuple[bool, Any]:
    """Return whether ``output`` is legal from ``state``, and the next state."""
    if input.op == GET:
        return output.value == state.value, state
    if input.op == PUT:
        if state.version == input.version:
            return (
                str(output.err) in _PUT_APPLIED,
                KvState(input.value, state.version + 1),
            )
        return str(output.err) in _PUT_REJECTED, state
    return False, _INVALID


def describe_operation(input: KvInput, output: KvOutput) -> str:
    """Render an operation for display."""
    if input.op == GET:
        return (
            f"get('{input.key}') -> "
            f"('{output.value}', '{output.version:d}', '{output.err!s}')"
        )
    if input.op == PUT:
        return (
            f"put('{input.key}', '{input.value}', '{input.version:d}') -> "
            f"('{output.err!s}')"
        )
    return _INVALID