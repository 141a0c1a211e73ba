# codes.py — category code decoding and tolerant payload parsing
from __future__ import annotations
import csv
import io
import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Tuple

from models import Code

CATEGORY_LEN = 2
SUBCATEGORY_LEN = 4

SPREAD_FLAG = "A"
HALF_SPLIT_FLAG = "B"
SUB_SPREAD_FLAG = "a"
SUB_HALF_SPLIT_FLAG = "b"

# Delimiters accepted in a pasted distribution: commas, semicolons, whitespace.
_SPLIT_RE = re.compile(r"[,;\s]+")


def decode(code: str) -> Code:
    """Split a code such as ``"3B2a"`` into its category / subcategory fields.

    Total over any string: missing characters leave the matching flag empty,
    which the constraint builder treats as unconstrained.
    """
    raw = "" if code is None else str(code)
    category = raw[:CATEGORY_LEN]
    sub_key = raw[:SUBCATEGORY_LEN]
    category_flag = category[1] if len(category) == CATEGORY_LEN else ""
    sub_flag = sub_key[3] if len(sub_key) == SUBCATEGORY_LEN else ""
    return Code(raw, category, category_flag, sub_key, sub_flag)


def category_counts(codes: Iterable[str]) -> Dict[str, int]:
    return dict(Counter(decode(c).category for c in codes))


def subcategory_counts(codes: Iterable[str]) -> Dict[str, int]:
    return dict(Counter(decode(c).sub_key for c in codes))


def _clean_cell(val: Any) -> str:
    if val is None:
        return ""
    return str(val).strip()


def _as_listish(val: Any) -> List[Any]:
    if val is None:
        return []
    if isinstance(val, (list, tuple)):
        return list(val)
    return [val]


def _split_text(text: str) -> List[str]:
    return [tok for tok in _SPLIT_RE.split(text) if tok]


def parse_distribution(payload: Any) -> Tuple[List[str], Optional[str]]:
    """
    Return (codes, error_message_or_None).
    Accepts a list of cells, a mapping carrying the list under
    ``distribution`` / ``codes`` / ``codes[]``, or delimited text.
    Empty placeholder cells are dropped.
    """
    if payload is None:
        return [], "no distribution supplied"

    raw: List[Any]
    if isinstance(payload, dict):
        raw = []
        for key in ("distribution", "codes", "codes[]"):
            if key in payload:
                raw = _as_listish(payload[key])
                break
        else:
            return [], "no distribution supplied"
    elif isinstance(payload, str):
        raw = [payload]
    else:
        try:
            raw = list(payload)
        except TypeError:
            return [], f"unsupported distribution payload: {type(payload).__name__}"

    codes: List[str] = []
    for cell in raw:
        # flat lists of rows (single-column ranges) come through as [[code], ...]
        if isinstance(cell, (list, tuple)):
            cells = [_clean_cell(c) for c in cell]
        else:
            text = _clean_cell(cell)
            cells = _split_text(text) if text else []
        codes.extend(c for c in cells if c)

    if not codes:
        return [], "distribution is empty"
    return codes, None


def parse_rows(payload: Any) -> Tuple[List[List[str]], Optional[str]]:
    """
    Return (rows, error_message_or_None).
    Accepts a list of row lists or CSV text; every cell becomes a string.
    """
    if payload is None:
        return [], "no template rows supplied"

    if isinstance(payload, dict):
        for key in ("rows", "table", "rows[]"):
            if key in payload:
                payload = payload[key]
                break
        else:
            return [], "no template rows supplied"

    # form posts wrap scalars in single-item lists
    if isinstance(payload, list) and len(payload) == 1 and isinstance(payload[0], str):
        payload = payload[0]

    if isinstance(payload, str):
        reader = csv.reader(io.StringIO(payload))
        rows = [[_clean_cell(c) for c in row] for row in reader]
    elif isinstance(payload, (list, tuple)):
        rows = []
        for row in payload:
            if not isinstance(row, (list, tuple)):
                return [], f"template row is not a list: {row!r}"
            rows.append(["" if c is None else str(c) for c in row])
    else:
        return [], f"unsupported rows payload: {type(payload).__name__}"

    if not rows:
        return [], "template table is empty"
    return rows, None


__all__ = [
    "CATEGORY_LEN",
    "SUBCATEGORY_LEN",
    "decode",
    "category_counts",
    "subcategory_counts",
    "parse_distribution",
    "parse_rows",
]
