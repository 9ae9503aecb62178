"""Request, reply and error types of the versioned key/value service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

Tversion = int


class Err(str, Enum):
    """Outcome of a key/value operation."""

    # returned by servers and clerks
    OK = "OK"
    NO_KEY = "ErrNoKey"
    VERSION = "ErrVersion"
    # returned by clerks only
    MAYBE = "ErrMaybe"
    # replicated services
    WRONG_LEADER = "ErrWrongLeader"
    WRONG_GROUP = "ErrWrongGroup"

    def __str__(self) -> str:
        return self.value


@dataclass
class PutArgs:
    key: str
    value: str
    version: Tversion = 0


@dataclass
class PutReply:
    err: Err | None = None


@dataclass
class GetArgs:
    key: str


@dataclass
class GetReply:
    value: str = ""
    version: Tversion = 0
    err: Err | None = None