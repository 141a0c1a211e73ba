from __future__ import annotations

import json
import logging
import os
import time
import threading
from pathlib import Path
from typing import Any, Dict, Optional

# ------------------------------
# Thread-safe global progress state
# ------------------------------

PROGRESS_LOCK = threading.Lock()


def _state_file_path() -> Path:
    configured = os.environ.get("PROGRESS_STATE_FILE")
    if configured:
        return Path(configured)
    return Path(__file__).resolve().parent / "logs" / "progress_state.json"


STATE_FILE = _state_file_path()
STATE_FILE_TMP = STATE_FILE.with_name(STATE_FILE.name + ".tmp")
_LAST_STATE_MTIME: float = 0.0


def _init_logger() -> logging.Logger:
    logger = logging.getLogger("solver.attempt_log")
    if logger.handlers:
        return logger

    log_path = Path(__file__).resolve().parent / "logs" / "solver_attempts.log"
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False
    except Exception:
        # If the logger cannot be initialised we silently continue; progress
        # tracking should not break the solver.
        logger.handlers.clear()
    return logger


ATTEMPT_LOGGER = _init_logger()


def _log_enabled() -> bool:
    return bool(ATTEMPT_LOGGER.handlers)


def _fmt_seconds(seconds: Optional[float]) -> Optional[str]:
    if seconds is None:
        return None
    try:
        return f"{float(seconds):.2f}s"
    except Exception:
        return None


def _emit_log(event: str, level: int = logging.INFO, **fields: Any) -> None:
    if not _log_enabled():
        return
    extras = [
        f"{key}={value}"
        for key, value in fields.items()
        if value is not None and value != ""
    ]
    try:
        if extras:
            ATTEMPT_LOGGER.log(level, "%s | %s", event, " ".join(extras))
        else:
            ATTEMPT_LOGGER.log(level, "%s", event)
    except Exception:
        # Logging failures must never bubble back to callers.
        pass


def log_attempt_detail(event: str, **fields: Any) -> None:
    """Write a free-form detail line to the attempt log."""
    _emit_log(event, **fields)


def log_attempt_warning(event: str, **fields: Any) -> None:
    _emit_log(event, level=logging.WARNING, **fields)


LOG_STATE: Dict[str, Any] = {
    "run_start": None,
    "row": "",
    "row_start": None,
    "attempt": "",
    "attempt_start": None,
}


def _persist_locked() -> None:
    global _LAST_STATE_MTIME
    try:
        STATE_FILE.parent.mkdir(parents=True, exist_ok=True)
        with STATE_FILE_TMP.open("w", encoding="utf-8") as fh:
            json.dump(PROGRESS, fh, ensure_ascii=False, separators=(",", ":"))
        STATE_FILE_TMP.replace(STATE_FILE)
        try:
            _LAST_STATE_MTIME = STATE_FILE.stat().st_mtime
        except OSError:
            _LAST_STATE_MTIME = time.time()
    except Exception:
        # Persistence must never break solver progress updates.
        pass


def _load_persisted_locked(force: bool = False) -> None:
    global _LAST_STATE_MTIME
    try:
        stat = STATE_FILE.stat()
    except OSError:
        return
    if not force and stat.st_mtime <= _LAST_STATE_MTIME:
        return
    try:
        with STATE_FILE.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except Exception:
        return
    if not isinstance(data, dict):
        return
    for key in PROGRESS.keys():
        if key in data:
            PROGRESS[key] = data[key]
    _LAST_STATE_MTIME = stat.st_mtime


def _finalize_attempt_locked(now: Optional[float] = None, *, reason: Optional[str] = None) -> None:
    attempt = LOG_STATE.get("attempt")
    if not attempt:
        return
    if now is None:
        now = _now()
    start = LOG_STATE.get("attempt_start")
    duration = None
    if isinstance(start, (int, float)):
        duration = max(0.0, float(now) - float(start))
    _emit_log(
        "Attempt finished",
        row=LOG_STATE.get("row") or "",
        attempt=attempt,
        duration=_fmt_seconds(duration),
        violations=PROGRESS.get("violations"),
        reason=reason,
    )
    LOG_STATE["attempt"] = ""
    LOG_STATE["attempt_start"] = None


def _log_attempt_transition_locked(new_attempt: str) -> None:
    prev_attempt = LOG_STATE.get("attempt") or ""
    if new_attempt == prev_attempt:
        return
    now = _now()
    if prev_attempt:
        _finalize_attempt_locked(now, reason="switch")
    LOG_STATE["attempt"] = new_attempt
    if new_attempt:
        LOG_STATE["attempt_start"] = now
        _emit_log(
            "Attempt started",
            row=LOG_STATE.get("row") or "",
            attempt=new_attempt,
        )
    else:
        LOG_STATE["attempt_start"] = None


def _log_row_transition_locked(new_row: str) -> None:
    prev_row = LOG_STATE.get("row") or ""
    if new_row == prev_row:
        return
    now = _now()
    if LOG_STATE.get("attempt"):
        _finalize_attempt_locked(now, reason="row_change")
    if prev_row and LOG_STATE.get("row_start"):
        duration = max(0.0, now - float(LOG_STATE["row_start"]))
        _emit_log(
            "Row finished",
            row=prev_row,
            duration=_fmt_seconds(duration),
        )
    LOG_STATE["row"] = new_row
    LOG_STATE["row_start"] = now
    if new_row:
        _emit_log("Row started", row=new_row)

# Single source of truth for the progress endpoint
PROGRESS: Dict[str, Any] = {
    "status": "Idle",          # Idle | Solving | Solved | Error
    "row": "",                 # index of the row being solved
    "rows_total": 0,           # marked rows in this run
    "rows_done": 0,            # marked rows finished (converged or not)
    "attempt": "",             # e.g. "restart 3"
    "percent": 0.0,            # 0..100 float
    "violations": None,        # best residual count for the current row
    "unconverged": 0,          # rows written with residual violations
    "elapsed_start": None,     # t0 (float) when solving started
    "elapsed": 0.0,            # seconds snapshot
    "message": "",             # optional note
    "done": False,             # run completed
    "ok": None,                # success flag if known
    "result_url": "",          # optional navigation target
    "run_id": 0,               # monotonically increasing identifier
    "distribution_size": 0,
}

# ------------------------------
# Helpers
# ------------------------------

def _now() -> float:
    return time.time()

def _fmt_elapsed(seconds: float) -> str:
    seconds = max(0.0, float(seconds))
    if seconds < 60:
        return f"{int(seconds)}s"
    m, s = divmod(int(seconds), 60)
    if m < 60:
        return f"{m}m {s}s"
    h, m = divmod(m, 60)
    return f"{h}h {m}m"

def reset() -> None:
    with PROGRESS_LOCK:
        now = _now()
        _finalize_attempt_locked(now, reason="reset")
        try:
            current_run_id = int(PROGRESS.get("run_id", 0))
        except Exception:
            current_run_id = 0
        PROGRESS.update({
            "status": "Idle",
            "row": "",
            "rows_total": 0,
            "rows_done": 0,
            "attempt": "",
            "percent": 0.0,
            "violations": None,
            "unconverged": 0,
            "elapsed_start": None,
            "elapsed": 0.0,
            "message": "",
            "done": False,
            "ok": None,
            "result_url": "",
            "run_id": current_run_id + 1,
            "distribution_size": 0,
        })
        LOG_STATE.update({
            "row": "",
            "row_start": None,
            "attempt": "",
            "attempt_start": None,
            "run_start": None,
        })
        _emit_log("Progress reset")
        _persist_locked()

def start_timer() -> None:
    with PROGRESS_LOCK:
        now = _now()
        PROGRESS["elapsed_start"] = now
        PROGRESS["elapsed"] = 0.0
        LOG_STATE["run_start"] = now
        _emit_log("Run timer started")
        _persist_locked()

def _touch_elapsed_locked() -> None:
    t0 = PROGRESS.get("elapsed_start")
    if t0 is not None:
        PROGRESS["elapsed"] = _now() - float(t0)

# ------------------------------
# Setters (tolerant)
# ------------------------------

def set_status(v: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["status"] = str(v)
        _persist_locked()

def set_row(v: Any) -> None:
    with PROGRESS_LOCK:
        row_str = "" if v is None else str(v)
        PROGRESS["row"] = row_str
        _log_row_transition_locked(row_str)
        _persist_locked()

def set_rows_total(n: Any) -> None:
    try:
        i = int(n)
    except Exception:
        i = 0
    with PROGRESS_LOCK:
        PROGRESS["rows_total"] = max(0, i)
        _persist_locked()

def set_rows_done(n: Any, *, unconverged: Any = None) -> None:
    try:
        i = int(n)
    except Exception:
        i = 0
    with PROGRESS_LOCK:
        PROGRESS["rows_done"] = max(0, i)
        if unconverged is not None:
            try:
                PROGRESS["unconverged"] = max(0, int(unconverged))
            except Exception:
                pass
        total = PROGRESS.get("rows_total") or 0
        if total:
            PROGRESS["percent"] = max(0.0, min(100.0, 100.0 * PROGRESS["rows_done"] / float(total)))
        _touch_elapsed_locked()
        _persist_locked()

def set_attempt(v: Any) -> None:
    with PROGRESS_LOCK:
        attempt_str = "" if v is None else str(v)
        PROGRESS["attempt"] = attempt_str
        _log_attempt_transition_locked(attempt_str)
        _persist_locked()

def set_best_violations(n: Any) -> None:
    try:
        i: Optional[int] = max(0, int(n))
    except Exception:
        i = None
    with PROGRESS_LOCK:
        PROGRESS["violations"] = i
        _persist_locked()

def set_elapsed(seconds: Any) -> None:
    try:
        f = float(seconds)
    except Exception:
        f = 0.0
    with PROGRESS_LOCK:
        PROGRESS["elapsed"] = max(0.0, f)
        _persist_locked()

def set_message(msg: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["message"] = "" if msg is None else str(msg)
        _persist_locked()

def set_result_url(url: Any) -> None:
    with PROGRESS_LOCK:
        PROGRESS["result_url"] = "" if url is None else str(url)
        _persist_locked()

def set_distribution_size(n: Any) -> None:
    try:
        i = int(n)
    except Exception:
        i = 0
    with PROGRESS_LOCK:
        PROGRESS["distribution_size"] = max(0, i)
        _persist_locked()

def set_done(ok: Any = None, *, reason: Any = None, message: Any = None) -> None:
    """Mark the run complete.

    ``ok`` controls the final status when provided (``"Solved"`` or
    ``"Error"``); without it an idle status is promoted to ``"Solved"``.
    ``reason`` / ``message`` end up in the ``message`` field.
    """

    final_status: Optional[str] = None
    ok_flag: Optional[bool] = None
    if ok is not None:
        ok_flag = bool(ok)
        final_status = "Solved" if ok_flag else "Error"

    final_message = message if message is not None else reason

    with PROGRESS_LOCK:
        _touch_elapsed_locked()
        now = _now()
        if final_status is not None:
            PROGRESS["status"] = final_status
        elif PROGRESS.get("status") in ("", "Idle", None):
            PROGRESS["status"] = "Solved"
            ok_flag = True
        PROGRESS["percent"] = 100.0
        if final_message is not None:
            PROGRESS["message"] = str(final_message)
        PROGRESS["done"] = True
        if ok_flag is not None:
            PROGRESS["ok"] = ok_flag
        _finalize_attempt_locked(now, reason="run_complete")
        _log_row_transition_locked("")
        run_start = LOG_STATE.get("run_start")
        if isinstance(run_start, (int, float)):
            total = max(0.0, now - float(run_start))
        else:
            total = None
        LOG_STATE["run_start"] = None
        _emit_log(
            "Run finished",
            status=PROGRESS.get("status"),
            ok=PROGRESS.get("ok"),
            duration=_fmt_seconds(total),
            rows=f"{PROGRESS.get('rows_done')}/{PROGRESS.get('rows_total')}",
            unconverged=PROGRESS.get("unconverged"),
            message=PROGRESS.get("message"),
        )
        _persist_locked()

# ------------------------------
# Snapshots for the UI
# ------------------------------

def snapshot() -> Dict[str, Any]:
    with PROGRESS_LOCK:
        _load_persisted_locked()
        _touch_elapsed_locked()
        snap = {k: v for k, v in PROGRESS.items() if k != "elapsed_start"}
        snap["elapsed_str"] = _fmt_elapsed(PROGRESS["elapsed"])
        return snap

def as_json() -> Dict[str, Any]:
    # Alias used by /progress3
    return snapshot()


with PROGRESS_LOCK:
    _load_persisted_locked(force=True)
