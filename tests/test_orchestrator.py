import random
from collections import Counter

import pytest

import solver.orchestrator as orchestrator
from solver.orchestrator import generate_templates, is_marked, splice_row

SCENARIO = ["1A1a", "1A2a", "2B1a", "2B2a", "3C1c", "3C1c"]


def _table():
    return [
        ["Packet 1", "a", "b", "c", "d", "e", "f", "keep"],
        ["", "x1", "x2"],
        ["Packet 2", "a", "b", "c", "d", "e", "f"],
    ]


def test_is_marked_reads_the_sentinel_cell():
    assert is_marked(["x"])
    assert is_marked([1, "a"])
    assert not is_marked([])
    assert not is_marked([""])
    assert not is_marked(["   ", "a"])
    assert not is_marked([None, "a"])


def test_splice_row_replaces_exactly_len_codes():
    row = ["P", "a", "b", "c", "d"]
    assert splice_row(row, ["1", "2"], 1) == ["P", "1", "2", "c", "d"]
    assert splice_row(row, ["1", "2", "3", "4", "5"], 2) == ["P", "a", "1", "2", "3", "4", "5"]
    assert row == ["P", "a", "b", "c", "d"]


def test_splice_row_pads_short_rows():
    assert splice_row(["P"], ["1", "2"], 3) == ["P", "", "", "1", "2"]
    with pytest.raises(ValueError):
        splice_row(["P"], ["1"], -1)


def test_generate_templates_fills_marked_rows_only():
    table = _table()
    rows_out, results = generate_templates(SCENARIO, table, offset=1, seed=9)

    assert len(rows_out) == 3
    assert rows_out[1] == ["", "x1", "x2"]
    assert rows_out[1] is not table[1]

    first, third = rows_out[0], rows_out[2]
    assert first[0] == "Packet 1"
    assert first[-1] == "keep"
    assert len(first) == 8
    assert Counter(first[1:7]) == Counter(SCENARIO)
    assert Counter(third[1:7]) == Counter(SCENARIO)
    for a, b in zip(first[1:7], first[2:7]):
        assert a[:2] != b[:2]

    assert [r.marked for r in results] == [True, False, True]
    assert all(r.ok for r in results)
    assert results[0].result.violations == 0
    assert results[1].result is None


def test_generate_templates_uses_configured_offset(monkeypatch):
    monkeypatch.setattr(orchestrator.CFG, "TEMPLATE_OFFSET", 2, raising=False)
    rows_out, _ = generate_templates(["1A1x", "2B1x"], [["P", "keep"]], seed=1)
    assert rows_out[0][:2] == ["P", "keep"]
    assert sorted(rows_out[0][2:]) == ["1A1x", "2B1x"]


def test_generate_templates_drops_empty_distribution_cells():
    rows_out, results = generate_templates(["1A1x", "", "2B1x", None], [["P"]], offset=1, seed=0)
    assert sorted(rows_out[0][1:]) == ["1A1x", "2B1x"]
    assert results[0].result.converged


def test_same_seed_gives_same_templates():
    table = _table()
    a, _ = generate_templates(SCENARIO, table, offset=1, seed=123)
    b, _ = generate_templates(SCENARIO, table, offset=1, seed=123)
    assert a == b

    c, _ = generate_templates(SCENARIO, table, offset=1, rng=random.Random(123))
    assert c == a


def test_unconverged_rows_are_written_best_effort():
    dist = ["1A1x", "1A2x", "1A3x"]
    rows_out, results = generate_templates(dist, [["P"], ["Q"]], offset=1, seed=0,
                                           max_steps=5, max_seconds=0)

    for row, res in zip(rows_out, results):
        assert sorted(row[1:]) == sorted(dist)
        assert res.marked
        assert not res.ok
        assert res.result.violations > 0
        assert res.result.reason == "step limit"


def test_a_failing_row_does_not_block_the_rest(monkeypatch):
    real_solve = orchestrator.solve
    calls = {"n": 0}

    def flaky_solve(*args, **kwargs):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("boom")
        return real_solve(*args, **kwargs)

    monkeypatch.setattr(orchestrator, "solve", flaky_solve)
    table = [["P1", "old"], ["P2", "old"]]
    rows_out, results = generate_templates(["1A1x", "2B1x"], table, offset=1, seed=4)

    assert rows_out[0] == ["P1", "old"]
    assert results[0].error == "RuntimeError: boom"
    assert not results[0].ok
    assert sorted(rows_out[1][1:]) == ["1A1x", "2B1x"]
    assert results[1].ok


def test_bad_inputs_raise_before_solving():
    with pytest.raises(ValueError):
        generate_templates([], [["P"]])
    with pytest.raises(ValueError):
        generate_templates(["1A1x"], [["P"]], offset=-1)
    with pytest.raises(ValueError):
        generate_templates(["1A1x"], [["P"]], rounding="floor")
    with pytest.raises(ValueError):
        generate_templates(["1A1x"], [["P"]], restart_depth=-2)


def test_row_results_serialise_for_the_api():
    _, results = generate_templates(["1A1x", "2B1x"], [["P"], [""]], offset=1, seed=0)
    marked, unmarked = (r.as_dict() for r in results)
    assert marked["marked"] is True
    assert marked["violations"] == 0
    assert marked["converged"] is True
    assert unmarked == {"index": 1, "marked": False, "ok": True, "error": None}
