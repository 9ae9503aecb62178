"""Self-describing serialisation for RPC arguments and persisted state.

Each value is written as one length-prefixed frame holding a JSON tree
tagged with the value's types. Dataclass fields whose names start with an
underscore are never transmitted. The module reports such fields, and it
reports decoding into a template that already holds non-default values.
"""

from __future__ import annotations

import base64
import dataclasses
import enum
import json
import struct
import threading
import typing
from typing import Any, BinaryIO

_HEADER = struct.Struct(">I")
_MAX_DEFAULT_DEPTH = 3

_lock = threading.Lock()
_error_count = 0
_checked: set[type] = set()
_name_to_type: dict[str, type] = {}
_type_to_name: dict[type, str] = {}
_explicit_names: set[str] = set()


def error_count() -> int:
    """Return how many problems have been reported so far."""
    with _lock:
        return _error_count


def _record_error(message: str, *, only_first: bool = False) -> None:
    global _error_count
    with _lock:
        show = not only_first or _error_count < 1
        _error_count += 1
    if show:
        print(message)


def _default_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


def _register(name: str, cls: type, *, explicit: bool) -> str:
    with _lock:
        existing = _name_to_type.get(name)
        if existing is not None and existing is not cls and name in _explicit_names:
            raise ValueError(f"registering duplicate types for {name!r}")
        previous = _type_to_name.get(cls)
        if (
            explicit
            and previous is not None
            and previous != name
            and previous in _explicit_names
        ):
            raise ValueError(
                f"registering duplicate names for {cls.__qualname__}: "
                f"{previous!r} != {name!r}"
            )
        _name_to_type[name] = cls
        if explicit or previous is None:
            _type_to_name[cls] = name
        if explicit:
            _explicit_names.add(name)
        return _type_to_name[cls]


def _name_for(cls: type) -> str:
    with _lock:
        name = _type_to_name.get(cls)
    if name is not None:
        return name
    return _register(_default_name(cls), cls, explicit=False)


def _lookup(name: str) -> type:
    with _lock:
        cls = _name_to_type.get(name)
    if cls is None:
        raise ValueError(f"type {name!r} is not registered")
    return cls


def register(value: Any) -> None:
    """Register a type (or the type of an instance) under its default name."""
    cls = value if isinstance(value, type) else type(value)
    _check_type(cls)
    _register(_default_name(cls), cls, explicit=True)


def register_name(name: str, value: Any) -> None:
    """Register a type (or the type of an instance) under the given name."""
    cls = value if isinstance(value, type) else type(value)
    _check_type(cls)
    _register(name, cls, explicit=True)


def _resolve_annotation(annotation: Any) -> Any:
    """Map a field annotation to a type, resolving simple names via the registry."""
    if not isinstance(annotation, str):
        return annotation
    name = annotation.strip().strip("'\"")
    with _lock:
        known = list(_name_to_type.values()) + list(_checked)
    for cls in known:
        if cls.__qualname__ == name or cls.__name__ == name:
            return cls
    return None


def _check_type(tp: Any) -> None:
    if tp is None or tp is Any:
        return
    origin = typing.get_origin(tp)
    if origin is not None:
        for arg in typing.get_args(tp):
            if isinstance(arg, type) or typing.get_origin(arg) is not None:
                _check_type(arg)
        return
    if not (isinstance(tp, type) and dataclasses.is_dataclass(tp)):
        return
    with _lock:
        if tp in _checked:
            return
        _checked.add(tp)
    for f in dataclasses.fields(tp):
        if f.name.startswith("_"):
            _record_error(
                f"labgob error: private field {f.name} of {tp.__name__} "
                "in RPC or persisted state is never transmitted"
            )
        _check_type(_resolve_annotation(f.type))


def _is_non_default(value: Any) -> bool:
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (bool, int, float)):
        return value != 0
    return False


def _check_default(value: Any, depth: int, name: str) -> None:
    if depth > _MAX_DEFAULT_DEPTH or value is None:
        return
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        for f in dataclasses.fields(value):
            field_name = f"{name}.{f.name}" if name else f.name
            _check_default(getattr(value, f.name), depth + 1, field_name)
        return
    if _is_non_default(value):
        what = name or type(value).__name__
        _record_error(
            f"labgob warning: Decoding into a non-default variable/field {what} "
            "may not work",
            only_first=True,
        )


def _to_tree(value: Any) -> Any:
    if value is None:
        return ["n"]
    if isinstance(value, enum.Enum):
        return ["e", _name_for(type(value)), _to_tree(value.value)]
    if isinstance(value, bool):
        return ["b", value]
    if isinstance(value, int):
        return ["i", value]
    if isinstance(value, float):
        return ["f", value]
    if isinstance(value, str):
        return ["s", value]
    if isinstance(value, (bytes, bytearray)):
        return ["y", base64.b64encode(bytes(value)).decode("ascii")]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        cls = type(value)
        _check_type(cls)
        fields = {
            f.name: _to_tree(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if not f.name.startswith("_")
        }
        return ["o", _name_for(cls), fields]
    if isinstance(value, list):
        return ["l", [_to_tree(v) for v in value]]
    if isinstance(value, tuple):
        return ["t", [_to_tree(v) for v in value]]
    if isinstance(value, dict):
        return ["d", [[_to_tree(k), _to_tree(v)] for k, v in value.items()]]
    raise TypeError(f"values of type {type(value).__name__} cannot be encoded")


def _build_object(cls: type, data: dict[str, Any]) -> Any:
    if not dataclasses.is_dataclass(cls):
        raise ValueError(f"{cls.__qualname__} is not a dataclass")
    obj = cls.__new__(cls)
    for f in dataclasses.fields(cls):
        if f.name in data:
            value = _from_tree(data[f.name])
        elif f.default is not dataclasses.MISSING:
            value = f.default
        elif f.default_factory is not dataclasses.MISSING:
            value = f.default_factory()
        else:
            value = None
        object.__setattr__(obj, f.name, value)
    return obj


def _from_tree(node: Any) -> Any:
    tag = node[0]
    if tag == "n":
        return None
    if tag in ("b", "i", "f", "s"):
        return node[1]
    if tag == "y":
        return base64.b64decode(node[1])
    if tag == "l":
        return [_from_tree(v) for v in node[1]]
    if tag == "t":
        return tuple(_from_tree(v) for v in node[1])
    if tag == "d":
        return {_from_tree(k): _from_tree(v) for k, v in node[1]}
    if tag == "e":
        return _lookup(node[1])(_from_tree(node[2]))
    if tag == "o":
        return _build_object(_lookup(node[1]), node[2])
    raise ValueError(f"unknown tag {tag!r}")


def _is_type_hint(into: Any) -> bool:
    return into is Any or isinstance(into, type) or typing.get_origin(into) is not None


def _conforms(value: Any, into: Any) -> bool:
    if into is None or into is Any:
        return True
    if _is_type_hint(into):
        target = typing.get_origin(into) or into
        if not isinstance(target, type):
            return True
    else:
        target = type(into)
    if target is float and isinstance(value, int):
        return True
    return isinstance(value, target)


class LabEncoder:
    """Writes framed values to a binary stream."""

    def __init__(self, writer: BinaryIO) -> None:
        self._writer = writer

    def encode(self, value: Any) -> None:
        """Encode one value and write it as a frame."""
        payload = json.dumps(_to_tree(value), separators=(",", ":")).encode("utf-8")
        self._writer.write(_HEADER.pack(len(payload)) + payload)


class LabDecoder:
    """Reads framed values from a binary stream."""

    def __init__(self, reader: BinaryIO) -> None:
        self._reader = reader

    def _read_exact(self, n: int, *, at_boundary: bool = False) -> bytes:
        chunks = bytearray()
        while len(chunks) < n:
            chunk = self._reader.read(n - len(chunks))
            if not chunk:
                break
            chunks.extend(chunk)
        if not chunks and at_boundary:
            raise EOFError("no more values in stream")
        if len(chunks) < n:
            raise ValueError("truncated value in stream")
        return bytes(chunks)

    def decode(self, into: Any) -> Any:
        """Read the next value.

        ``into`` is either a type hint the value must match, or a template
        instance of the expected type; a template holding non-default values
        is reported, since decoded defaults would not replace them.
        """
        if _is_type_hint(into):
            _check_type(into)
        elif into is not None:
            _check_type(type(into))
            _check_default(into, 2, "")
        (size,) = _HEADER.unpack(self._read_exact(_HEADER.size, at_boundary=True))
        payload = self._read_exact(size)
        try:
            value = _from_tree(json.loads(payload.decode("utf-8")))
        except (IndexError, KeyError, TypeError) as exc:
            raise ValueError(f"malformed value in stream: {exc}") from exc
        if not _conforms(value, into):
            raise TypeError(
                f"decoded {type(value).__name__} does not match the expected type"
            )
        return value