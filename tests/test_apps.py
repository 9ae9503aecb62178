import os
import time

import pytest

from distlab import apps
from distlab.mapreduce import KeyValue


@pytest.fixture
def no_sleep(monkeypatch):
    slept = []
    monkeypatch.setattr(time, "sleep", slept.append)
    return slept


def test_wc_map_splits_on_non_letters():
    kvs = apps.wc_map("ignored.txt", "hello, world! hello123again")
    assert [kv.key for kv in kvs] == ["hello", "world", "hello", "again"]
    assert all(kv.value == "1" for kv in kvs)


def test_wc_map_empty_contents():
    assert apps.wc_map("f", "  123 ,,, ") == []


def test_wc_reduce_counts_values():
    values = ["1"] * 7
    assert apps.wc_reduce("word", values) == str(len(values))


def test_indexer_map_emits_each_word_once():
    kvs = apps.indexer_map("doc", "the cat and the hat and the cat")
    keys = [kv.key for kv in kvs]
    assert sorted(keys) == sorted(set(keys))
    assert set(keys) == {"the", "cat", "and", "hat"}
    assert all(kv.value == "doc" for kv in kvs)


def test_indexer_reduce_sorts_documents():
    assert apps.indexer_reduce("w", ["b", "a"]) == "2 a,b"


def test_nocrash_map_summarises_file():
    contents = "some contents"
    kvs = apps.nocrash_map("input.txt", contents)
    assert kvs == [
        KeyValue("a", "input.txt"),
        KeyValue("b", str(len("input.txt"))),
        KeyValue("c", str(len(contents))),
        KeyValue("d", "xyzzy"),
    ]


def test_nocrash_reduce_joins_sorted():
    assert apps.nocrash_reduce("k", ["z", "m", "a"]) == " ".join(["a", "m", "z"])


def test_crash_map_matches_nocrash_when_lucky(monkeypatch, no_sleep):
    monkeypatch.setattr(apps.secrets, "randbelow", lambda n: n - 1)
    assert apps.crash_map("f.txt", "abc") == apps.nocrash_map("f.txt", "abc")
    assert apps.crash_reduce("k", ["y", "x"]) == apps.nocrash_reduce("k", ["y", "x"])
    assert no_sleep == []


def test_maybe_crash_exits(monkeypatch):
    class Exited(Exception):
        pass

    def fake_exit(code):
        raise Exited(code)

    monkeypatch.setattr(apps.secrets, "randbelow", lambda n: 0)
    monkeypatch.setattr(apps.os, "_exit", fake_exit)
    with pytest.raises(Exited) as info:
        apps.maybe_crash()
    assert info.value.args == (1,)


def test_maybe_crash_delays(monkeypatch, no_sleep):
    rolls = iter([500, 2500])
    monkeypatch.setattr(apps.secrets, "randbelow", lambda n: next(rolls))
    result = apps.maybe_crash()
    assert (result, no_sleep) == (None, [2.5])
    assert list(rolls) == []


def test_early_exit_map():
    assert apps.early_exit_map("pg-x.txt", "whatever") == [KeyValue("pg-x.txt", "1")]


def test_early_exit_reduce_plain_key_does_not_sleep(no_sleep):
    assert apps.early_exit_reduce("pg-plain.txt", ["1", "1"]) == str(2)
    assert no_sleep == []


def test_early_exit_reduce_slow_keys(no_sleep):
    assert apps.early_exit_reduce("pg-sherlock_holmes.txt", ["1"]) == "1"
    assert apps.early_exit_reduce("pg-tom_sawyer.txt", ["1"]) == "1"
    assert no_sleep == [3.0, 3.0]


def test_jobcount_counts_invocations(monkeypatch, tmp_path, no_sleep):
    monkeypatch.chdir(tmp_path)
    assert apps.jobcount_map("f", "c") == [KeyValue("a", "x")]
    apps.jobcount_map("g", "c")
    markers = list(tmp_path.glob("mr-worker-jobcount*"))
    assert len(markers) == 2
    assert apps.jobcount_reduce("a", ["x", "x"]) == str(len(markers))
    assert all(2.0 <= s < 5.0 for s in no_sleep)


def test_nparallel_counts_only_live_workers_of_phase(monkeypatch, tmp_path, no_sleep):
    monkeypatch.chdir(tmp_path)
    (tmp_path / f"mr-worker-reduce-{os.getpid()}").write_text("x")
    assert apps.nparallel("map") == 1
    assert not (tmp_path / f"mr-worker-map-{os.getpid()}").exists()
    assert (tmp_path / f"mr-worker-reduce-{os.getpid()}").exists()


def test_mtiming_map_reports_time_and_parallelism(monkeypatch, tmp_path, no_sleep):
    monkeypatch.chdir(tmp_path)
    before = time.time()
    kvs = apps.mtiming_map("f", "c")
    pid = os.getpid()
    assert [kv.key for kv in kvs] == [f"times-{pid}", f"parallel-{pid}"]
    stamp = kvs[0].value
    assert len(stamp.split(".")[1]) == 1
    assert abs(float(stamp) - before) < 5
    assert kvs[1].value == "1"


def test_mtiming_reduce_joins_sorted():
    assert apps.mtiming_reduce("k", ["2", "1"]) == apps.nocrash_reduce("k", ["1", "2"])


def test_rtiming_map_keys():
    kvs = apps.rtiming_map("f", "c")
    assert "".join(kv.key for kv in kvs) == "abcdefghij"
    assert {kv.value for kv in kvs} == {"1"}


def test_rtiming_reduce_reports_parallelism(monkeypatch, tmp_path, no_sleep):
    monkeypatch.chdir(tmp_path)
    assert apps.rtiming_reduce("a", ["1"]) == "1"
    assert list(tmp_path.iterdir()) == []


@pytest.mark.parametrize(
    "name, expected",
    [
        ("wc", (apps.wc_map, apps.wc_reduce)),
        ("../../mrapps/wc.so", (apps.wc_map, apps.wc_reduce)),
        ("indexer.so", (apps.indexer_map, apps.indexer_reduce)),
        ("early_exit", (apps.early_exit_map, apps.early_exit_reduce)),
        ("nocrash", (apps.nocrash_map, apps.nocrash_reduce)),
    ],
)
def test_load_app(name, expected):
    assert apps.load_app(name) == expected


def test_load_app_unknown():
    with pytest.raises(ValueError):
        apps.load_app("nosuchapp.so")