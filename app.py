# app.py — packet template generation endpoint; progress no-cache
from __future__ import annotations
import os
import time
from typing import Any, Dict, Optional

from flask import Flask, request, send_from_directory, jsonify, url_for

from solver.orchestrator import generate_templates
from codes import parse_distribution, parse_rows
from io_files import templates_path, write_templates

from progress import (
    reset as progress_reset,
    as_json as progress_json,
    start_timer as progress_start,
    set_status, set_elapsed, set_message, set_done, set_result_url,
)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


app = Flask(__name__)


@app.after_request
def _no_cache_progress(resp):
    if request.path == "/progress3":
        resp.headers["Cache-Control"] = "no-store, max-age=0"
        resp.headers["Pragma"] = "no-cache"
        resp.headers["Expires"] = "0"
    return resp


def _fmt_elapsed(seconds: float) -> str:
    if seconds < 1:
        return "0s"
    m, s = divmod(int(seconds), 60)
    if m == 0:
        return f"{s}s"
    h, m = divmod(m, 60)
    if h == 0:
        return f"{m}m {s}s"
    return f"{h}h {m}m {s}s"


def _merge_like_mapping() -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        merged.update(payload)

    form_dict = request.form.to_dict(flat=False)
    for k, v in form_dict.items():
        merged.setdefault(k, v if isinstance(v, list) else [v])

    args_dict = request.args.to_dict(flat=False)
    for k, v in args_dict.items():
        merged.setdefault(k, v if isinstance(v, list) else [v])

    return merged


def _optional_int(like: Dict[str, Any], key: str) -> Optional[int]:
    """Read an integer field that may arrive as a scalar or a one-item form list."""
    val = like.get(key)
    if isinstance(val, (list, tuple)):
        val = val[0] if val else None
    if val is None or (isinstance(val, str) and not val.strip()):
        return None
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    if isinstance(val, bool) or not isinstance(val, (int, str)):
        raise ValueError(f"{key} must be a whole number, got {val!r}")
    return int(val)


def _bad_request(reason: str, t0: float):
    set_status("error")
    set_done(False, reason=reason)
    set_elapsed(time.time() - t0)
    return jsonify({"ok": False, "reason": reason, "elapsed_str": _fmt_elapsed(time.time() - t0)}), 400


def _finalize_solver_progress(ok_flag: bool, message: str) -> None:
    """Write the terminal solver status without clobbering failure states."""

    set_status("Solved" if ok_flag else "error")
    set_done(ok_flag, reason=message)


@app.route("/generate", methods=["POST"])
def generate():
    progress_reset()
    progress_start()
    set_status("Solving")
    t0 = time.time()

    like = _merge_like_mapping()
    codes, err = parse_distribution(like)
    if err:
        seen_keys = ", ".join(list(like.keys())[:8]) or "—"
        return _bad_request(f"Bad distribution: {err} (saw keys: {seen_keys})", t0)

    rows, err = parse_rows(like)
    if err:
        return _bad_request(f"Bad template rows: {err}", t0)

    try:
        offset = _optional_int(like, "offset")
        seed = _optional_int(like, "seed")
    except (TypeError, ValueError) as e:
        return _bad_request(f"Bad numeric field: {e}", t0)

    try:
        rows_out, results = generate_templates(codes, rows, offset=offset, seed=seed)
    except ValueError as e:
        return _bad_request(str(e), t0)

    marked = [r for r in results if r.marked]
    failed = [r for r in marked if not r.ok]
    ok_flag = not failed
    if ok_flag:
        message = f"{len(marked)} template(s) generated"
    else:
        message = f"{len(failed)} of {len(marked)} template(s) left with violations"
    _finalize_solver_progress(ok_flag, message)
    set_elapsed(time.time() - t0)

    templates_name = os.path.basename(templates_path(BASE_DIR))
    try:
        write_templates(rows_out, BASE_DIR)
    except OSError as e:
        set_message(f"{message}; could not write {templates_name}: {e}")
    set_result_url(url_for("download_templates"))

    return jsonify({
        "ok": ok_flag,
        "message": message,
        "rows": rows_out,
        "results": [r.as_dict() for r in results],
        "distribution_size": len(codes),
        "templates_filename": templates_name,
        "elapsed_str": _fmt_elapsed(time.time() - t0),
    })


@app.route("/download/templates")
def download_templates():
    path = templates_path(BASE_DIR)
    return send_from_directory(os.path.dirname(path), os.path.basename(path), as_attachment=True)


@app.route("/progress3")
def progress3():
    return jsonify(progress_json())


if __name__ == "__main__":
    progress_start()
    app.run(debug=False)
