import pytest

from distlab import apps
from distlab.sequential import main, run_sequential


@pytest.fixture
def inputs(tmp_path):
    first = tmp_path / "pg-one.txt"
    second = tmp_path / "pg-two.txt"
    first.write_text("a b a")
    second.write_text("b, c")
    return [str(first), str(second)]


def test_word_count(tmp_path, inputs):
    out = tmp_path / "out.txt"
    run_sequential(apps.wc_map, apps.wc_reduce, inputs, out)
    assert out.read_text() == "a 2\nb 2\nc 1\n"


def test_keys_are_sorted_and_distinct(tmp_path, inputs):
    out = tmp_path / "out.txt"
    run_sequential(apps.indexer_map, apps.indexer_reduce, inputs, out)
    keys = [line.split(" ", 1)[0] for line in out.read_text().splitlines()]
    assert keys == sorted(set(keys))
    assert set(keys) == {"a", "b", "c"}


def test_reduce_receives_all_values_for_key(tmp_path, inputs):
    seen = {}

    def reducef(key, values):
        seen[key] = list(values)
        return str(len(values))

    out = tmp_path / "out.txt"
    run_sequential(apps.wc_map, reducef, inputs, out)
    assert seen == {"a": ["1", "1"], "b": ["1", "1"], "c": ["1"]}
    assert out.read_text() == "a 2\nb 2\nc 1\n"


def test_empty_inputs_give_empty_output(tmp_path):
    empty = tmp_path / "empty.txt"
    empty.write_text("")
    out = tmp_path / "out.txt"
    run_sequential(apps.wc_map, apps.wc_reduce, [str(empty)], out)
    assert out.read_text() == ""


def test_missing_input_raises(tmp_path):
    with pytest.raises(OSError):
        run_sequential(
            apps.wc_map, apps.wc_reduce, [str(tmp_path / "absent.txt")], tmp_path / "o"
        )


def test_main_writes_default_output(monkeypatch, tmp_path, inputs):
    monkeypatch.chdir(tmp_path)
    assert main(["wc.so", *inputs]) == 0
    expected = tmp_path / "expected.txt"
    run_sequential(apps.wc_map, apps.wc_reduce, inputs, expected)
    assert (tmp_path / "mr-out-0").read_text() == expected.read_text()


def test_main_usage(capsys):
    assert main(["wc.so"]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_unknown_app(monkeypatch, tmp_path, inputs, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["bogus.so", *inputs]) == 1
    assert "cannot load plugin" in capsys.readouterr().err
    assert not (tmp_path / "mr-out-0").exists()


def test_main_missing_file(monkeypatch, tmp_path, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["wc", str(tmp_path / "absent.txt")]) == 1
    assert "cannot open" in capsys.readouterr().err