"""Helpers for checking key/value clients and their results.

Clients append ``(id, n)`` entries to a shared key, or race puts on one
key. These helpers make keys and values and check what clients report
against what the server holds.
"""

from __future__ import annotations

import random
import string
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from distlab.kvtypes import Tversion

# Elections are allowed to take up to one second.
ELECTION_TIMEOUT = 1.0

_LETTERS = string.ascii_letters


@dataclass
class ClntRes:
    """How many of a client's puts succeeded, and how many may have."""

    nok: int = 0
    nmaybe: int = 0

    def __add__(self, other: ClntRes) -> ClntRes:
        if not isinstance(other, ClntRes):
            return NotImplemented
        return ClntRes(self.nok + other.nok, self.nmaybe + other.nmaybe)


@dataclass
class EntryV:
    """A value written by client ``id`` at version ``v``."""

    id: int
    v: Tversion


@dataclass
class EntryN:
    """The ``n``-th append made by client ``id``."""

    id: int
    n: int


def rand_value(n: int) -> str:
    """Return a random string of ``n`` ASCII letters."""
    if n < 0:
        raise ValueError("length must not be negative")
    return "".join(random.choice(_LETTERS) for _ in range(n))


def make_keys(n: int) -> list[str]:
    """Return the keys ``k0`` .. ``k{n-1}``, spread over several shards."""
    return [f"k{i}" for i in range(n)]


def check_appends(
    entries: Iterable[EntryN],
    nclnt: int,
    results: Sequence[ClntRes],
    version: Tversion,
) -> dict[int, int]:
    """Check the appends found in a key's value against the clients' results.

    Each client's entries must appear in increasing order; gaps are allowed
    only for puts the client reported as maybe-done. The key's version must
    be one more than the number of entries. Raises :class:`AssertionError`
    when a check fails, and returns the number of skipped appends per client.
    """
    expect = {i: 0 for i in range(nclnt)}
    skipped = {i: 0 for i in range(nclnt)}
    count = 0
    for entry in entries:
        count += 1
        want = expect.get(entry.id, 0)
        if want > entry.n:
            raise AssertionError(
                f"{entry.id}: wrong expecting {want} but got {entry.n}"
            )
        if want == entry.n:
            expect[entry.id] = want + 1
        else:
            skipped[entry.id] = skipped.get(entry.id, 0) + (entry.n - want)
            expect[entry.id] = entry.n + 1

    if count + 1 != version:
        raise AssertionError(f"{count} appends in val != puts on server {version}")

    for client, n in expect.items():
        res = results[client]
        if skipped.get(client, 0) > res.nmaybe:
            raise AssertionError(
                f"{client}: skipped puts {skipped[client]} on server "
                f"> {res.nmaybe} maybe"
            )
        if n > res.nok + res.nmaybe:
            raise AssertionError(
                f"{client}: {n} puts on server > ok+maybe {res.nok + res.nmaybe}"
            )
    return skipped