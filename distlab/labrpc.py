"""In-process RPC over a simulated, unreliable network.

A :class:`Network` holds client end-points and named servers. It can lose
requests and replies, delay or reorder messages, and disconnect single
end-points. Arguments and replies always pass through :mod:`distlab.labgob`,
so an RPC never shares program objects between caller and handler.

Typical use::

    net = Network()
    end = net.make_end("client-1")
    server = Server()
    server.add_service(Service(my_handler_object))
    net.add_server("server-1", server)
    net.connect("client-1", "server-1")
    net.enable("client-1", True)
    reply = end.call("MyHandlerClass.method", args)

:meth:`ClientEnd.call` returns the handler's reply, or raises
:class:`RPCError` when no reply arrived: the request or the reply was lost,
the end-point is disabled, or the server was removed while the call was in
progress. Many calls may be outstanding on one end-point at once, and the
network may deliver them out of order.

A handler is any public method of the service object that takes exactly one
positional argument (the decoded request) and returns the reply.
"""

from __future__ import annotations

import inspect
import io
import queue
import random
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Hashable

from distlab.labgob import LabDecoder, LabEncoder

SHORT_DELAY_MS = 27
LONG_DELAY_MS = 7000
MAX_DELAY_MS = LONG_DELAY_MS + 100

_POLL_INTERVAL = 0.1
_DROP_PER_MILLE = 100

CallFunc = Callable[[str, str, bytes], bytes]
DispatchFunc = Callable[[str, bytes], bytes]


class RPCError(Exception):
    """No reply was received: it was lost, or the server is unreachable."""


def marshall(args: Any) -> bytes:
    """Encode a value into bytes ready to send."""
    buffer = io.BytesIO()
    LabEncoder(buffer).encode(args)
    return buffer.getvalue()


def unmarshall(data: bytes) -> Any:
    """Decode a value produced by :func:`marshall`."""
    return LabDecoder(io.BytesIO(data)).decode(None)


@dataclass
class _Reply:
    data: bytes = b""
    error: BaseException | None = None


class ClientEnd:
    """A client's connection point to one server on a :class:`Network`."""

    def __init__(self, endname: Hashable, network: Network) -> None:
        self.endname = endname
        self._network = network
        self._callf: CallFunc | None = None

    def set_call(self, f: CallFunc | None) -> None:
        """Route calls through ``f(endname, svc_meth, args_bytes)`` instead.

        ``f`` returns the encoded reply or raises :class:`RPCError`.
        """
        self._callf = f

    def call(self, svc_meth: str, args: Any) -> Any:
        """Send ``args`` to ``svc_meth`` (e.g. ``"Raft.append_entries"``).

        Returns the decoded reply; raises :class:`RPCError` if none arrived.
        """
        if self._callf is not None:
            return unmarshall(self._callf(str(self.endname), svc_meth, marshall(args)))
        return unmarshall(self._network._send(self.endname, svc_meth, marshall(args)))

    def forward(self, svc_meth: str, args: bytes) -> bytes:
        """Send already encoded ``args`` and return the encoded reply."""
        return self._network._send(self.endname, svc_meth, args)


class Network:
    """A simulated network of client end-points and servers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reliable = True
        self._long_delays = False
        self._long_reordering = False
        self._ends: dict[Hashable, ClientEnd] = {}
        self._enabled: dict[Hashable, bool] = {}
        self._servers: dict[Hashable, Server | None] = {}
        self._connections: dict[Hashable, Hashable | None] = {}
        self._done = threading.Event()
        self._stats_lock = threading.Lock()
        self._count = 0
        self._bytes = 0

    def __enter__(self) -> Network:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Shut the network down; later calls fail at once."""
        self._done.set()

    def set_reliable(self, yes: bool) -> None:
        """An unreliable network delays and drops messages."""
        with self._lock:
            self._reliable = yes

    def is_reliable(self) -> bool:
        with self._lock:
            return self._reliable

    def set_long_reordering(self, yes: bool) -> None:
        """Sometimes delay replies for a long while."""
        with self._lock:
            self._long_reordering = yes

    def set_long_delays(self, yes: bool) -> None:
        """Pause a long time before failing calls on a dead connection."""
        with self._lock:
            self._long_delays = yes

    def is_long_delays(self) -> bool:
        with self._lock:
            return self._long_delays

    def make_end(self, endname: Hashable) -> ClientEnd:
        """Create a disabled, unconnected end-point named ``endname``."""
        with self._lock:
            if endname in self._ends:
                raise ValueError(f"end-point {endname!r} already exists")
            end = ClientEnd(endname, self)
            self._ends[endname] = end
            self._enabled[endname] = False
            self._connections[endname] = None
            return end

    def lookup_end(self, endname: Hashable) -> ClientEnd:
        with self._lock:
            try:
                return self._ends[endname]
            except KeyError:
                raise KeyError(f"end-point {endname!r} doesn't exist") from None

    def delete_end(self, endname: Hashable) -> None:
        with self._lock:
            if endname not in self._ends:
                raise KeyError(f"end-point {endname!r} doesn't exist")
            del self._ends[endname]
            del self._enabled[endname]
            del self._connections[endname]

    def add_server(self, servername: Hashable, server: Server) -> None:
        with self._lock:
            self._servers[servername] = server

    def delete_server(self, servername: Hashable) -> None:
        """Remove a server; calls in progress to it fail."""
        with self._lock:
            self._servers[servername] = None

    def connect(self, endname: Hashable, servername: Hashable) -> None:
        """Direct an end-point's calls to a server."""
        with self._lock:
            self._connections[endname] = servername

    def enable(self, endname: Hashable, enabled: bool) -> None:
        with self._lock:
            self._enabled[endname] = enabled

    def get_count(self, servername: Hashable) -> int:
        """Number of requests the named server has received."""
        with self._lock:
            server = self._servers.get(servername)
        if server is None:
            raise KeyError(f"no server {servername!r}")
        return server.get_count()

    def get_total_count(self) -> int:
        """Number of requests sent over the network."""
        with self._stats_lock:
            return self._count

    def get_total_bytes(self) -> int:
        """Bytes of requests and delivered replies sent over the network."""
        with self._stats_lock:
            return self._bytes

    def _add_bytes(self, n: int) -> None:
        with self._stats_lock:
            self._bytes += n

    def _send(self, endname: Hashable, svc_meth: str, args: bytes) -> bytes:
        if self._done.is_set():
            raise RPCError("network has been shut down")
        with self._stats_lock:
            self._count += 1
            self._bytes += len(args)
        return self._process(endname, svc_meth, args)

    def _is_server_dead(
        self, endname: Hashable, servername: Hashable, server: Server
    ) -> bool:
        with self._lock:
            return (
                not self._enabled.get(endname, False)
                or self._servers.get(servername) is not server
            )

    def _process(self, endname: Hashable, svc_meth: str, args: bytes) -> bytes:
        with self._lock:
            enabled = self._enabled.get(endname, False)
            servername = self._connections.get(endname)
            server = self._servers.get(servername) if servername is not None else None
            reliable = self._reliable
            long_reordering = self._long_reordering
            long_delays = self._long_delays

        if not (enabled and servername is not None and server is not None):
            # simulate no reply and an eventual timeout
            limit = LONG_DELAY_MS if long_delays else 100
            time.sleep(random.randrange(limit) / 1000)
            raise RPCError("no reply")

        if not reliable:
            time.sleep(random.randrange(SHORT_DELAY_MS) / 1000)
            if random.randrange(1000) < _DROP_PER_MILLE:
                raise RPCError("request lost")

        results: queue.Queue[_Reply] = queue.Queue(maxsize=1)

        def run_handler() -> None:
            try:
                results.put(_Reply(data=server._dispatch(svc_meth, args)))
            except BaseException as exc:  # delivered to the caller
                results.put(_Reply(error=exc))

        threading.Thread(target=run_handler, daemon=True).start()

        reply: _Reply | None = None
        dead = False
        while reply is None and not dead:
            try:
                reply = results.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                dead = self._is_server_dead(endname, servername, server)

        # never reply once the server has been removed, so that a client
        # does not see success for work persisted by a superseded server
        dead = self._is_server_dead(endname, servername, server)
        if reply is None or dead:
            raise RPCError("server is gone")
        if reply.error is not None:
            raise reply.error
        if not reliable and random.randrange(1000) < _DROP_PER_MILLE:
            raise RPCError("reply lost")
        if long_reordering and random.randrange(900) < 600:
            ms = 200 + random.randrange(1 + random.randrange(2000))
            time.sleep(ms / 1000)
        self._add_bytes(len(reply.data))
        return reply.data


class Server:
    """A collection of services sharing one RPC dispatcher."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._services: dict[str, Service] = {}
        self._count = 0
        self._dispatchf: DispatchFunc | None = None

    def set_dispatch(self, f: DispatchFunc | None) -> None:
        """Hand every request to ``f(svc_meth, args_bytes)`` instead.

        ``f`` returns the encoded reply or raises :class:`RPCError`.
        """
        self._dispatchf = f

    def add_service(self, service: Service) -> None:
        with self._lock:
            self._services[service.name] = service

    def dispatch(self, srv: Hashable, svc_meth: str, clnt: Hashable, args: bytes) -> bytes:
        """Run one encoded request against this server, returning the encoded reply."""
        return self._dispatch(svc_meth, args)

    def get_count(self) -> int:
        """Number of requests this server has received."""
        with self._lock:
            return self._count

    def _dispatch(self, svc_meth: str, args: bytes) -> bytes:
        with self._lock:
            self._count += 1
            service_name, _, method_name = svc_meth.rpartition(".")
            service = self._services.get(service_name)
            dispatchf = self._dispatchf
            choices = sorted(self._services)
        if dispatchf is not None:
            return dispatchf(svc_meth, args)
        if service is None:
            raise LookupError(
                f"unknown service {service_name!r} in {svc_meth!r}; "
                f"expecting one of {choices}"
            )
        return service._dispatch(method_name, svc_meth, args)


def _takes_one_argument(function: Any) -> bool:
    """True for a plain method taking ``self`` and exactly one positional argument."""
    code = function.__code__
    if code.co_flags & (inspect.CO_VARARGS | inspect.CO_VARKEYWORDS):
        return False
    return code.co_argcount == 2 and code.co_kwonlyargcount == 0


class Service:
    """An object whose public one-argument methods handle RPCs."""

    def __init__(self, receiver: Any) -> None:
        self.name = type(receiver).__name__
        self._methods: dict[str, Callable[[Any], Any]] = {}
        for attr in dir(receiver):
            if attr.startswith("_"):
                continue
            raw = inspect.getattr_static(receiver, attr, None)
            if not inspect.isfunction(raw):
                continue
            if _takes_one_argument(raw):
                self._methods[attr] = getattr(receiver, attr)

    def _dispatch(self, method_name: str, svc_meth: str, args: bytes) -> bytes:
        method = self._methods.get(method_name)
        if method is None:
            raise LookupError(
                f"unknown method {method_name!r} in {svc_meth!r}; "
                f"expecting one of {sorted(self._methods)}"
            )
        return marshall(method(unmarshall(args)))