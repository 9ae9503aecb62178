# distlab

Building blocks for experimenting with distributed systems in Python, using
only the standard library.

## Modules

- `distlab.labrpc` — an in-process RPC layer over a simulated network.
- `distlab.labgob` — the serialiser every RPC argument and reply passes
  through.
- `distlab.kvtypes` — request, reply and error types of a versioned
  key/value service: `Err`, `PutArgs`, `PutReply`, `GetArgs`, `GetReply`.
- `distlab.models` — a sequential model of a versioned key/value store for
  checking histories of client operations.
- `distlab.oplog` — `OpLog`, a thread-safe, append-only log of operations.
- `distlab.kvtest` — helpers for checking key/value clients.
- `distlab.mapreduce` — `KeyValue`, the example RPC types `ExampleArgs` /
  `ExampleReply`, and `ihash` for choosing a reduce bucket.
- `distlab.apps` — map and reduce functions for MapReduce applications.
- `distlab.sequential` — a single-process MapReduce runner and its command.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Simulated RPC

```python
from distlab.labrpc import Network, RPCError, Server, Service

class Echo:
    def shout(self, text):
        return text.upper()

with Network() as net:
    end = net.make_end("client-1")
    server = Server()
    server.add_service(Service(Echo()))
    net.add_server("server-1", server)
    net.connect("client-1", "server-1")
    net.enable("client-1", True)

    try:
        reply = end.call("Echo.shout", "hello")   # "HELLO"
    except RPCError:
        reply = None                              # no reply arrived
```

- A `Service` exposes every public method of its object that takes exactly
  one positional argument; the service name is the object's class name, and
  calls address it as `"ClassName.method"`.
- `ClientEnd.call(svc_meth, args)` returns the handler's reply, or raises
  `RPCError` when no reply arrived: the end-point is disabled or not
  connected, the request or reply was lost, the server was removed with
  `Network.delete_server` while the call was running, or the network was
  shut down with `Network.cleanup` (also done on leaving a `with` block).
  An exception raised by the handler reaches the caller; an unknown service
  or method raises `LookupError`.
- New end-points start disabled and unconnected. `make_end` raises
  `ValueError` for a name already in use; `lookup_end` and `delete_end`
  raise `KeyError` for an unknown one.
- `set_reliable(False)` adds short delays and drops about one in ten
  requests and replies; `set_long_reordering(True)` sometimes holds replies
  back for a while; `set_long_delays(True)` makes calls on a dead connection
  wait up to seven seconds before failing.
- `get_count(servername)` is the number of requests a server received,
  `get_total_count()` the number sent over the network, and
  `get_total_bytes()` the bytes of requests and delivered replies.
- `ClientEnd.forward` sends already encoded arguments and returns the
  encoded reply. `ClientEnd.set_call` and `Server.set_dispatch` route
  requests through a function of your own; `Server.dispatch` runs one
  encoded request against a server directly. `marshall` and `unmarshall`
  do the encoding.

## Serialisation

`LabEncoder(stream).encode(value)` writes one length-prefixed frame;
`LabDecoder(stream).decode(into)` reads the next one and returns it. It
handles `None`, booleans, numbers, strings, bytes, lists, tuples, dicts,
enums and dataclasses. `into` may be `None`, a type the value must match
(otherwise `TypeError`), or a template instance. Decoding past the last
frame raises `EOFError`; a truncated or malformed frame raises `ValueError`.

Dataclass fields whose names start with an underscore are never
transmitted, and are reported. Decoding into a template that already holds
non-default values is reported too. `error_count()` returns the number of
reports so far. Dataclasses are known by module and qualified name;
`register` and `register_name` register a type (or an instance's type)
explicitly, and `register_name` under a name of your choosing.

## Key/value histories

`distlab.models` describes each call as an `Operation` (`client_id`,
`input`, `call`, `output`, `ret`) with a `KvInput` (op `GET` = 0 or
`PUT` = 1, key, value, version) and a `KvOutput` (value, version, err).
`partition(history)` splits a history into per-key histories ordered by
key; `init_state()` is the state of an unwritten key; `step(state, input,
output)` returns whether the output is legal and the next state: a put whose
version matches succeeds with `OK` or `ErrMaybe` and advances the version,
otherwise it must answer `ErrVersion` or `ErrMaybe`. `describe_operation`
renders an operation as text.

`distlab.kvtest` provides `rand_value(n)` (random ASCII letters),
`make_keys(n)` (`k0` … `k{n-1}`), `ELECTION_TIMEOUT` (one second), the
records `ClntRes` (ok and maybe counts, addable with `+`), `EntryV` and
`EntryN`, and `check_appends(entries, nclnt, results, version)`, which
raises `AssertionError` if clients' appends are out of order, skipped
without a maybe-done put, or do not match the key's version, and otherwise
returns the number of skipped appends per client.

## MapReduce applications

`distlab.apps.load_app(name)` returns a `(map, reduce)` pair by name; a path
with an extension is accepted and its stem used (`../mrapps/wc.so` selects
`wc`). Unknown names raise `ValueError`.

| name | what it does |
| --- | --- |
| `wc` | counts words (maximal runs of letters) |
| `indexer` | lists, per word, the number and sorted names of documents holding it |
| `crash` | summarises each file; exits the process about a third of the time and stalls up to ten seconds about a third |
| `nocrash` | the same summary, never crashing |
| `early_exit` | counts files per name; keys containing `sherlock` or `tom` take three seconds |
| `jobcount` | leaves a marker file per map call; reduce counts the markers |
| `mtiming` | reports when each map ran and how many ran alongside it |
| `rtiming` | reports how many reduces ran alongside each one |

The functions are also importable directly (`wc_map`, `wc_reduce`, …), as
are `maybe_crash` and `nparallel(phase)`. The timing and job-count
applications work through files in the current directory.

## Sequential MapReduce

```
distlab-mrsequential wc pg-*.txt
```

The first argument names an application known to `load_app`; the rest are
input files. The output is written to `mr-out-0` in the current directory,
one `key value` line per distinct key, in key order. The command exits with
status 1 and a message on standard error for too few arguments, an unknown
application or an unreadable input file.

From Python:

```python
from distlab.apps import wc_map, wc_reduce
from distlab.sequential import run_sequential

run_sequential(wc_map, wc_reduce, ["a.txt", "b.txt"], "mr-out-0")
```

## What is not included

- There is no distributed MapReduce: no coordinator, no worker processes and
  no RPC between them. Only the shared types, `ihash` and the sequential
  runner are provided.
- There is no key/value server, client clerk, lock service or replicated
  (consensus-based) service; `distlab.kvtypes` only defines their messages.
- There is no linearizability checker that searches histories; `distlab.models`
  supplies the model and `distlab.oplog` the recorded history for one.