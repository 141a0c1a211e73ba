import importlib
from collections import Counter

import pytest

import config
import progress


@pytest.fixture
def app_module(tmp_path, monkeypatch):
    app = importlib.import_module("app")
    monkeypatch.setattr(config.CFG, "TEMPLATES_OUT", str(tmp_path / "templates.csv"), raising=False)
    return app


@pytest.fixture
def client(app_module):
    app_module.app.config["TESTING"] = True
    return app_module.app.test_client()


def test_finalize_solver_progress_respects_ok_flag(app_module, monkeypatch):
    calls = {"status": [], "done": []}

    def fake_set_status(value):
        calls["status"].append(value)

    def fake_set_done(ok=None, *, reason=None, message=None):
        calls["done"].append((ok, reason, message))

    monkeypatch.setattr(app_module, "set_status", fake_set_status)
    monkeypatch.setattr(app_module, "set_done", fake_set_done)

    app_module._finalize_solver_progress(True, "All good")
    assert calls["status"][-1] == "Solved"
    assert calls["done"][-1] == (True, "All good", None)

    app_module._finalize_solver_progress(False, "error happened")
    assert calls["status"][-1] == "error"
    assert calls["done"][-1] == (False, "error happened", None)


def test_generate_json_payload(client, tmp_path):
    dist = ["1A1a", "1A2a", "2B1a", "2B2a", "3C1c", "3C1c"]
    resp = client.post("/generate", json={
        "distribution": dist,
        "rows": [["Packet 1", "", "", "", "", "", ""], ["", "keep"]],
        "offset": 1,
        "seed": 5,
    })

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["ok"] is True
    assert body["distribution_size"] == 6
    assert Counter(body["rows"][0][1:]) == Counter(dist)
    assert body["rows"][1] == ["", "keep"]
    assert [r["marked"] for r in body["results"]] == [True, False]
    assert body["templates_filename"] == "templates.csv"
    assert (tmp_path / "templates.csv").exists()


def test_generate_form_payload_with_csv_rows(client):
    resp = client.post("/generate", data={
        "distribution": "1A1x, 2B1x, 3C1x",
        "rows": "P,a,b,c\n,x,y,z\n",
        "offset": "1",
        "seed": "3",
    })

    assert resp.status_code == 200
    body = resp.get_json()
    assert sorted(body["rows"][0][1:]) == ["1A1x", "2B1x", "3C1x"]
    assert body["rows"][1] == ["", "x", "y", "z"]


def test_generate_rejects_missing_distribution(client):
    resp = client.post("/generate", json={"rows": [["P"]]})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["ok"] is False
    assert body["reason"].startswith("Bad distribution")


def test_generate_rejects_bad_numbers(client):
    resp = client.post("/generate", json={
        "distribution": ["1A1x"], "rows": [["P"]], "offset": "two",
    })
    assert resp.status_code == 400
    assert "Bad numeric field" in resp.get_json()["reason"]

    resp = client.post("/generate", json={
        "distribution": ["1A1x"], "rows": [["P"]], "offset": -3,
    })
    assert resp.status_code == 400


@pytest.mark.parametrize("field, value", [
    ("offset", {"a": 1}),
    ("offset", {}),
    ("seed", [[]]),
    ("seed", True),
    ("offset", 1.9),
])
def test_generate_rejects_non_integer_numbers(client, field, value):
    resp = client.post("/generate", json={
        "distribution": ["1A1x", "2B1x"], "rows": [["P"]], field: value,
    })

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["ok"] is False
    assert "Bad numeric field" in body["reason"]
    snap = progress.snapshot()
    assert snap["done"] is True
    assert snap["ok"] is False
    assert snap["status"] == "Error"


def test_generate_accepts_whole_float_offset(client):
    resp = client.post("/generate", json={
        "distribution": ["1A1x", "2B1x"], "rows": [["P", "", ""]], "offset": 1.0, "seed": 2,
    })

    assert resp.status_code == 200
    assert sorted(resp.get_json()["rows"][0][1:]) == ["1A1x", "2B1x"]


def test_progress_endpoint_is_not_cached(client):
    resp = client.get("/progress3")
    assert resp.status_code == 200
    assert resp.headers["Cache-Control"] == "no-store, max-age=0"
    assert "run_id" in resp.get_json()


def test_download_serves_last_templates(client):
    client.post("/generate", json={"distribution": ["1A1x", "2B1x"], "rows": [["P"]], "seed": 1})
    resp = client.get("/download/templates")
    assert resp.status_code == 200
    assert b"P," in resp.data
