"""Helpers for writing generated template tables to disk."""

from __future__ import annotations

import csv
import os
from typing import Any, List, Sequence

from config import CFG


def _resolve_output_path(base_dir: str, configured_name: str, fallback: str) -> str:
    """Return the absolute path where an output artifact should be written."""

    name = (configured_name or "").strip() or fallback
    if os.path.isabs(name):
        return name
    return os.path.join(base_dir, name)


def templates_path(base_dir: str) -> str:
    """Return where the template table is written for ``base_dir``."""

    return _resolve_output_path(base_dir, CFG.TEMPLATES_OUT, "templates.csv")


def write_templates(rows: Sequence[Sequence[Any]], base_dir: str) -> str:
    """Write the template table to the configured CSV file."""

    path = templates_path(base_dir)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        for row in rows:
            writer.writerow(["" if c is None else c for c in row])
    return path


def read_table(path: str) -> List[List[str]]:
    """Read a CSV template table back as a list of string rows."""

    with open(path, "r", encoding="utf-8", newline="") as f:
        return [list(row) for row in csv.reader(f)]


__all__ = ["templates_path", "write_templates", "read_table"]
