"""Natural ordering for version labels and free-form version strings.

All comparison functions return a negative number, zero or a positive number,
so they plug straight into ``functools.cmp_to_key``.
"""

from __future__ import annotations

import re
from typing import Any, Optional, Sequence, Tuple

_NUMERIC_RE = re.compile(r"[0-9]+")
_CHUNK_RE = re.compile(r"([0-9]+)|([^0-9]+)")


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def is_numeric_label(label: str) -> bool:
    """Return True when the label is made of ASCII digits only."""
    return bool(_NUMERIC_RE.fullmatch(label))


def compare_label(left: str, right: str) -> int:
    """Compare two single labels.

    Numeric labels compare as integers and sort before alphabetic ones.
    Alphabetic labels compare case-sensitively. Numerically equal labels with
    different spellings ("01" vs "1") fall back to plain string order so the
    result stays consistent with equality.
    """
    left_numeric = is_numeric_label(left)
    right_numeric = is_numeric_label(right)
    if left_numeric and right_numeric:
        diff = _sign(int(left) - int(right))
        if diff:
            return diff
    elif left_numeric:
        return -1
    elif right_numeric:
        return 1
    return (left > right) - (left < right)


def compare_labels(left: Sequence[str], right: Sequence[str]) -> int:
    """Compare two label sequences element-wise; a strict prefix sorts first."""
    for a, b in zip(left, right):
        result = compare_label(a, b)
        if result:
            return result
    return _sign(len(left) - len(right))


def compare_versions(left: Any, right: Any) -> int:
    """Compare two parsed versions.

    Works on anything exposing ``major``, ``minor``, ``patch`` and ``labels``.
    At equal numeric triplets a version without labels (a release) is greater
    than one with labels (a pre-release).
    """
    for a, b in ((left.major, right.major), (left.minor, right.minor), (left.patch, right.patch)):
        if a != b:
            return _sign(a - b)
    if not left.labels and not right.labels:
        return 0
    if not left.labels:
        return 1
    if not right.labels:
        return -1
    return compare_labels(left.labels, right.labels)


def natural_sort_key(value: Optional[str]) -> Tuple[Tuple[Any, ...], ...]:
    """Key for sorting raw strings the way the listing queries do.

    Digit runs compare by integer value, other runs compare as text, and a
    digit run sorts before a text run at the same position.
    """
    key = []
    for digits, text in _CHUNK_RE.findall(value or ""):
        if digits:
            key.append((0, int(digits), digits))
        else:
            key.append((1, text))
    return tuple(key)


def natural_compare(left: Optional[str], right: Optional[str]) -> int:
    """Compare two raw strings by ``natural_sort_key``."""
    left_key = natural_sort_key(left)
    right_key = natural_sort_key(right)
    return (left_key > right_key) - (left_key < right_key)
