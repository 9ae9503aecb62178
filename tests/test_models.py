import pytest

from distlab.kvtypes import Err
from distlab.models import (
    GET,
    PUT,
    KvInput,
    KvOutput,
    KvState,
    Operation,
    describe_operation,
    init_state,
    partition,
    step,
)


def _op(key, client_id=0, call=0):
    return Operation(
        client_id=client_id,
        input=KvInput(op=GET, key=key),
        call=call,
        output=KvOutput(),
        ret=call + 1,
    )


def test_init_state_is_empty():
    assert init_state() == KvState("", 0)


def test_get_matching_value_is_legal():
    st = KvState("v", 2)
    ok, nxt = step(st, KvInput(op=GET, key="k"), KvOutput(value="v", version=2, err="OK"))
    assert ok is True
    assert nxt is st


def test_get_wrong_value_is_illegal():
    st = KvState("v", 2)
    ok, nxt = step(st, KvInput(op=GET, key="k"), KvOutput(value="w", err="OK"))
    assert ok is False
    assert nxt is st


@pytest.mark.parametrize("err", ["OK", "ErrMaybe", Err.OK, Err.MAYBE])
def test_put_matching_version_applies(err):
    ok, nxt = step(
        init_state(), KvInput(op=PUT, key="k", value="v", version=0), KvOutput(err=err)
    )
    assert ok is True
    assert nxt == KvState(value="v", version=1)


@pytest.mark.parametrize("err", ["ErrVersion", "ErrNoKey"])
def test_put_matching_version_with_rejection_is_illegal(err):
    ok, _ = step(
        init_state(), KvInput(op=PUT, key="k", value="v", version=0), KvOutput(err=err)
    )
    assert ok is False


@pytest.mark.parametrize("err, legal", [("ErrVersion", True), ("ErrMaybe", True), ("OK", False)])
def test_put_wrong_version_keeps_state(err, legal):
    st = KvState("old", 4)
    ok, nxt = step(st, KvInput(op=PUT, key="k", value="new", version=2), KvOutput(err=err))
    assert ok is legal
    assert nxt is st


def test_invalid_op():
    ok, nxt = step(init_state(), KvInput(op=7, key="k"), KvOutput())
    assert ok is False
    assert nxt == "<invalid>"
    assert describe_operation(KvInput(op=7, key="k"), KvOutput()) == "<invalid>"


def test_partition_groups_by_sorted_key():
    history = [_op("b", 0, 0), _op("a", 1, 1), _op("b", 2, 2), _op("c", 3, 3), _op("a", 4, 4)]
    parts = partition(history)
    assert [p[0].input.key for p in parts] == sorted({"a", "b", "c"})
    for part in parts:
        assert len({op.input.key for op in part}) == 1
        assert [op.call for op in part] == sorted(op.call for op in part)
    assert sum(len(p) for p in parts) == len(history)


def test_partition_empty():
    assert partition([]) == []


def test_describe_get():
    text = describe_operation(
        KvInput(op=GET, key="k"), KvOutput(value="v", version=3, err=Err.OK)
    )
    assert text == "get('k') -> ('v', '3', 'OK')"


def test_describe_put():
    text = describe_operation(
        KvInput(op=PUT, key="k", value="v", version=2), KvOutput(err="ErrVersion")
    )
    assert text == "put('k', 'v', '2') -> ('ErrVersion')"