"""Run a MapReduce application sequentially, in one process.

All intermediate pairs are held in memory rather than partitioned into
buckets; the output is one file with a ``key value`` line per distinct key.
"""

from __future__ import annotations

import itertools
import sys
from collections.abc import Iterable, Sequence
from operator import attrgetter
from pathlib import Path
from typing import Callable

from distlab.apps import load_app
from distlab.mapreduce import KeyValue

DEFAULT_OUTPUT = "mr-out-0"


def run_sequential(
    mapf: Callable[[str, str], list[KeyValue]],
    reducef: Callable[[str, list[str]], str],
    filenames: Iterable[str],
    output: str | Path = DEFAULT_OUTPUT,
) -> None:
    """Map every input file, sort by key, reduce each key and write the result.

    Raises :class:`OSError` if an input file cannot be read.
    """
    intermediate: list[KeyValue] = []
    for filename in filenames:
        contents = Path(filename).read_bytes().decode("utf-8", errors="replace")
        intermediate.extend(mapf(str(filename), contents))

    intermediate.sort(key=attrgetter("key"))

    with open(output, "w", encoding="utf-8") as out:
        for key, group in itertools.groupby(intermediate, key=attrgetter("key")):
            result = reducef(key, [kv.value for kv in group])
            out.write(f"{key} {result}\n")


def main(argv: Sequence[str] | None = None) -> int:
    """Command entry point: ``mrsequential app inputfiles...``."""
    args = list(sys.argv[1:] if argv is None else argv)
    if len(args) < 2:
        print("Usage: mrsequential xxx.so inputfiles...", file=sys.stderr)
        return 1

    try:
        mapf, reducef = load_app(args[0])
    except ValueError:
        print(f"cannot load plugin {args[0]}", file=sys.stderr)
        return 1

    try:
        run_sequential(mapf, reducef, args[1:], DEFAULT_OUTPUT)
    except OSError as exc:
        print(f"cannot open {exc.filename}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())