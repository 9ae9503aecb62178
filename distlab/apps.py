"""Map and reduce functions for MapReduce jobs.

Each application is a pair of functions: a map function taking a file name
and its contents and returning a list of :class:`KeyValue`, and a reduce
function taking a key and all values emitted for it and returning one
string. Some applications exist to exercise a MapReduce implementation:
they crash, stall, count their own invocations or detect parallelism.
"""

from __future__ import annotations

import itertools
import os
import random
import re
import secrets
import time
from pathlib import Path
from typing import Callable

from distlab.mapreduce import KeyValue

MapFunc = Callable[[str, str], "list[KeyValue]"]
ReduceFunc = Callable[[str, "list[str]"], str]

_CRASH_PER_MILLE = 330
_DELAY_PER_MILLE = 660
_MAX_DELAY_MS = 10 * 1000
_EARLY_EXIT_SLEEP = 3.0
_PARALLEL_SLEEP = 1.0
_JOBCOUNT_PREFIX = "mr-worker-jobcount"

_job_counter = itertools.count()


def _words(text: str) -> list[str]:
    """Split ``text`` into maximal runs of letters."""
    return [
        "".join(group)
        for is_letter, group in itertools.groupby(text, str.isalpha)
        if is_letter
    ]


def _join_sorted(values: list[str]) -> str:
    return " ".join(sorted(values))


def _summary(filename: str, contents: str) -> list[KeyValue]:
    return [
        KeyValue("a", filename),
        KeyValue("b", str(len(filename))),
        KeyValue("c", str(len(contents))),
        KeyValue("d", "xyzzy"),
    ]


# word count


def wc_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(word, "1")`` for every word in ``contents``."""
    return [KeyValue(word, "1") for word in _words(contents)]


def wc_reduce(key: str, values: list[str]) -> str:
    """Return the number of occurrences of the word."""
    return str(len(values))


# inverted index


def indexer_map(document: str, value: str) -> list[KeyValue]:
    """Emit ``(word, document)`` once for every distinct word."""
    return [KeyValue(word, document) for word in dict.fromkeys(_words(value))]


def indexer_reduce(key: str, values: list[str]) -> str:
    """Return the number of documents and their sorted, comma-separated names."""
    docs = sorted(values)
    return f"{len(docs)} {','.join(docs)}"


# crashing workers


def maybe_crash() -> None:
    """Exit the process about a third of the time; stall about a third."""
    roll = secrets.randbelow(1000)
    if roll < _CRASH_PER_MILLE:
        os._exit(1)
    elif roll < _DELAY_PER_MILLE:
        time.sleep(secrets.randbelow(_MAX_DELAY_MS) / 1000)


def crash_map(filename: str, contents: str) -> list[KeyValue]:
    """Summarise the input file, possibly crashing or stalling first."""
    maybe_crash()
    return _summary(filename, contents)


def crash_reduce(key: str, values: list[str]) -> str:
    """Join the sorted values, possibly crashing or stalling first."""
    maybe_crash()
    return _join_sorted(values)


def nocrash_map(filename: str, contents: str) -> list[KeyValue]:
    """Summarise the input file exactly as :func:`crash_map` does, never crashing."""
    return _summary(filename, contents)


def nocrash_reduce(key: str, values: list[str]) -> str:
    """Join the sorted values, never crashing."""
    return _join_sorted(values)


# early exit


def early_exit_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit ``(filename, "1")`` for each input file."""
    return [KeyValue(filename, "1")]


def early_exit_reduce(key: str, values: list[str]) -> str:
    """Count the values; some keys take a long time, to catch early exits."""
    if "sherlock" in key or "tom" in key:
        time.sleep(_EARLY_EXIT_SLEEP)
    return str(len(values))


# job counting


def jobcount_map(filename: str, contents: str) -> list[KeyValue]:
    """Leave a marker file in the working directory for every invocation."""
    marker = f"{_JOBCOUNT_PREFIX}-{os.getpid()}-{next(_job_counter)}"
    Path(marker).write_text("x")
    time.sleep((2000 + random.randrange(3000)) / 1000)
    return [KeyValue("a", "x")]


def jobcount_reduce(key: str, values: list[str]) -> str:
    """Return how many map invocations left a marker file."""
    return str(sum(1 for name in os.listdir(".") if name.startswith(_JOBCOUNT_PREFIX)))


# parallelism detection


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except (OSError, OverflowError):
        return False
    return True


def nparallel(phase: str) -> int:
    """Return how many workers, this one included, are running ``phase`` now.

    Each worker announces itself with a file named after its process id in
    the working directory and counts the announced processes still alive.
    """
    marker = Path(f"mr-worker-{phase}-{os.getpid()}")
    marker.write_text("x")

    pattern = re.compile(rf"mr-worker-{re.escape(phase)}-([+-]?\d+)")
    running = 0
    for name in os.listdir("."):
        match = pattern.match(name)
        if match and _is_alive(int(match.group(1))):
            running += 1

    time.sleep(_PARALLEL_SLEEP)
    marker.unlink()
    return running


def mtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Report when this map ran and how many maps ran alongside it."""
    started = time.time()
    pid = os.getpid()
    n = nparallel("map")
    return [
        KeyValue(f"times-{pid}", f"{started:.1f}"),
        KeyValue(f"parallel-{pid}", str(n)),
    ]


def mtiming_reduce(key: str, values: list[str]) -> str:
    """Join the sorted values."""
    return _join_sorted(values)


def rtiming_map(filename: str, contents: str) -> list[KeyValue]:
    """Emit the keys ``a`` to ``j``, each once."""
    return [KeyValue(letter, "1") for letter in "abcdefghij"]


def rtiming_reduce(key: str, values: list[str]) -> str:
    """Return how many reduces ran alongside this one."""
    return str(nparallel("reduce"))


_APPS: dict[str, tuple[MapFunc, ReduceFunc]] = {
    "wc": (wc_map, wc_reduce),
    "indexer": (indexer_map, indexer_reduce),
    "crash": (crash_map, crash_reduce),
    "nocrash": (nocrash_map, nocrash_reduce),
    "early_exit": (early_exit_map, early_exit_reduce),
    "jobcount": (jobcount_map, jobcount_reduce),
    "mtiming": (mtiming_map, mtiming_reduce),
    "rtiming": (rtiming_map, rtiming_reduce),
}


def load_app(name: str) -> tuple[MapFunc, ReduceFunc]:
    """Return the map and reduce functions of an application.

    ``name`` is the application name, optionally given as a path with an
    extension (``../mrapps/wc.so`` selects ``wc``).
    """
    key = Path(name).stem
    try:
        return _APPS[key]
    except KeyError:
        raise ValueError(
            f"unknown application {name!r}; expecting one of {sorted(_APPS)}"
        ) from None