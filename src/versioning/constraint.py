"""Constraint grammar and evaluator.

Supported syntax, combinable with ``||`` (either side) and whitespace or
commas (all must hold):

- exact: ``1.2.3``, ``=1.2.3``, ``==1.2.3``
- comparison: ``>1.2.3``, ``>=1.2``, ``<2``, ``<=1.4``, ``!=1.2.3``
- caret: ``^1.2.3`` (leftmost non-zero component may not change)
- tilde: ``~1.2.3``, ``~1.2``, ``~1`` (``~>`` is accepted as an alias)
- wildcard: ``1.x``, ``1.2.*``, ``*``
- hyphen range: ``1.0.0 - 2.0.0``

Parsing never fails. Tokens that cannot be understood are dropped, which only
widens the match set; text that yields nothing usable is universal. The legacy
sentinel ``0.0.0`` means "unconstrained".
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Tuple, Union

import semantic_version

from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants

from .models import ANY_CONSTRAINT, Bound, Comparator, ComparatorSet, Constraint, ConstraintKind, Version
from .parser import parse_version, split_labels, strip_prefix

logger = logging.getLogger(__name__)

_OR_SPLIT_RE = re.compile(r"\s*\|\|?\s*")
_OP_SPACE_RE = re.compile(r"(>=|<=|!=|==|~>|>|<|=|\^|~)\s+")
_HYPHEN_RE = re.compile(r"^(\S+)\s+-\s+(\S+)$")
_AND_SPLIT_RE = re.compile(r"[\s,]+")
_TOKEN_RE = re.compile(
    r"^(?P<op>>=|<=|!=|==|~>|>|<|=|\^|~)?"
    r"[vV]?(?P<major>\d+|[xX*])"
    r"(?:\.(?P<minor>\d+|[xX*]))?"
    r"(?:\.(?P<patch>\d+|[xX*]))?"
    r"(?:-(?P<pre>[0-9A-Za-z.\-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.\-]+))?$"
)
_WILDCARDS = frozenset("xX*")

# A token that narrows nothing, e.g. "*" or ">=0".
_UNIVERSAL = object()

Partial = Tuple[Optional[int], Optional[int], Optional[int]]


def _partial_from_match(match: "re.Match[str]") -> Partial:
    """Leading concrete components; anything after the first wildcard is a wildcard too."""
    components: List[Optional[int]] = []
    wild = False
    for name in ("major", "minor", "patch"):
        value = match.group(name)
        if wild or value is None or value in _WILDCARDS:
            wild = True
            components.append(None)
        else:
            components.append(int(value))
    return components[0], components[1], components[2]


def _specificity(partial: Partial) -> int:
    return sum(1 for c in partial if c is not None)


def _floor(partial: Partial, labels: Tuple[str, ...] = (), raw: str = "") -> Version:
    major, minor, patch = partial
    return Version(major or 0, minor or 0, patch or 0, labels, raw=raw)


def _bump(partial: Partial, position: int) -> Version:
    """Smallest release above every version sharing the first ``position`` components."""
    major, minor, patch = (c or 0 for c in partial)
    if position <= 1:
        return Version(major + 1, 0, 0)
    if position == 2:
        return Version(major, minor + 1, 0)
    return Version(major, minor, patch + 1)


def _caret_upper(partial: Partial) -> Version:
    major, minor, _ = partial
    n = _specificity(partial)
    if major != 0 or n == 1:
        return _bump(partial, 1)
    if minor != 0 or n == 2:
        return _bump(partial, 2)
    return _bump(partial, 3)


def _build_comparator(op: str, partial: Partial, target: Version):
    """Lower one token to a Comparator, _UNIVERSAL, or None when it cannot match sanely."""
    n = _specificity(partial)
    floor = Bound(target, True)

    if op in ("", "=", "=="):
        if n == 0:
            return _UNIVERSAL
        if n == 3:
            return Comparator(ConstraintKind.EXACT, "=", target, floor, Bound(target, True))
        return Comparator(ConstraintKind.WILDCARD, "*", target, floor, Bound(_bump(partial, n), False))

    if op == "!=":
        if n == 0:
            return None
        upper = Bound(target, True) if n == 3 else Bound(_bump(partial, n), False)
        return Comparator(ConstraintKind.COMPARISON, "!=", target, floor, upper)

    if op == ">":
        if n == 0:
            return None
        if n == 3:
            return Comparator(ConstraintKind.COMPARISON, ">", target, lower=Bound(target, False))
        return Comparator(ConstraintKind.COMPARISON, ">", target, lower=Bound(_bump(partial, n), True))

    if op == ">=":
        if n == 0:
            return _UNIVERSAL
        return Comparator(ConstraintKind.COMPARISON, ">=", target, lower=floor)

    if op == "<":
        if n == 0:
            return None
        return Comparator(ConstraintKind.COMPARISON, "<", target, upper=Bound(target, False))

    if op == "<=":
        if n == 0:
            return _UNIVERSAL
        if n == 3:
            return Comparator(ConstraintKind.COMPARISON, "<=", target, upper=Bound(target, True))
        return Comparator(ConstraintKind.COMPARISON, "<=", target, upper=Bound(_bump(partial, n), False))

    if op == "^":
        if n == 0:
            return _UNIVERSAL
        return Comparator(ConstraintKind.CARET, "^", target, floor, Bound(_caret_upper(partial), False))

    # "~" and "~>"
    if n == 0:
        return _UNIVERSAL
    return Comparator(ConstraintKind.TILDE, "~", target, floor, Bound(_bump(partial, min(n, 2)), False))


def _parse_token(token: str):
    match = _TOKEN_RE.match(token)
    if not match:
        return None
    partial = _partial_from_match(match)
    labels = split_labels(match.group("pre") or "") + split_labels(match.group("build") or "")
    target = _floor(partial, labels, raw=token)
    return _build_comparator(match.group("op") or "", partial, target)


def _parse_hyphen(left: str, right: str) -> Tuple[List[Comparator], bool]:
    """``A - B`` is ``>=A`` plus an upper edge that honours a partial B."""
    comparators: List[Comparator] = []
    degraded = False
    low = _parse_token(">=" + left)
    if isinstance(low, Comparator):
        comparators.append(low)
    elif low is None:
        degraded = True

    match = _TOKEN_RE.match(right)
    if match is None or match.group("op"):
        return comparators, True
    partial = _partial_from_match(match)
    n = _specificity(partial)
    if n == 0:
        return comparators, degraded
    labels = split_labels(match.group("pre") or "") + split_labels(match.group("build") or "")
    target = _floor(partial, labels, raw=right)
    if n == 3:
        upper = Bound(target, True)
    else:
        upper = Bound(_bump(partial, n), False)
    comparators.append(Comparator(ConstraintKind.COMPARISON, "<=", target, upper=upper))
    return comparators, degraded


def _parse_alternative(text: str) -> Tuple[ComparatorSet, bool]:
    """Parse one ``||`` branch. An empty result means the branch matches everything."""
    text = _OP_SPACE_RE.sub(r"\1", text.strip())
    if not text:
        return (), False

    hyphen = _HYPHEN_RE.match(text)
    if hyphen:
        comparators, degraded = _parse_hyphen(hyphen.group(1), hyphen.group(2))
        return tuple(comparators), degraded

    comparators = []
    degraded = False
    for token in _AND_SPLIT_RE.split(text):
        if not token:
            continue
        parsed = _parse_token(token)
        if parsed is None:
            degraded = True
            continue
        if parsed is _UNIVERSAL:
            continue
        comparators.append(parsed)
    return tuple(comparators), degraded


def is_legacy_sentinel(text: Optional[str]) -> bool:
    """True for the historical "no constraint" stand-in."""
    return strip_prefix(text).lstrip("=") == Constants.LEGACY_UNCONSTRAINED_SENTINEL


def parse_constraint(text: Optional[str]) -> Constraint:
    """Parse constraint text.

    Empty text, a bare wildcard and the legacy sentinel are universal, whether
    they make up the whole text or one `||` alternative.
    """
    raw = text or ""
    stripped = raw.strip()
    if not stripped or is_legacy_sentinel(stripped):
        return Constraint(raw=raw)

    alternatives: List[ComparatorSet] = []
    degraded = False
    universal = False
    for branch in _OR_SPLIT_RE.split(stripped):
        if is_legacy_sentinel(branch):
            universal = True
            continue
        comparators, branch_degraded = _parse_alternative(branch)
        degraded = degraded or branch_degraded
        if not comparators:
            universal = True
            continue
        if comparators not in alternatives:
            alternatives.append(comparators)

    if degraded and is_debug_enabled(logger):
        logger.debug(
            "Constraint degraded",
            extra=extra_context(
                event="decision",
                component="constraint",
                action="parse",
                outcome="degraded",
                constraint=raw,
            ),
        )
    if universal:
        return Constraint(raw=raw, degraded=degraded)
    return Constraint(alternatives=tuple(alternatives), raw=raw, degraded=degraded)


def _as_constraint(constraint: Union[str, Constraint, None]) -> Constraint:
    if isinstance(constraint, Constraint):
        return constraint
    return parse_constraint(constraint)


def _as_version(version: Union[str, Version]) -> Version:
    if isinstance(version, Version):
        return version
    return parse_version(version)


def _set_matches(comparators: ComparatorSet, version: Version) -> bool:
    # Pre-releases are opt-in: only a set that names a labelled target admits them.
    if version.is_prerelease and not any(c.target.labels for c in comparators):
        return False
    return all(c.contains(version) for c in comparators)


def matches(constraint: Union[str, Constraint, None], version: Union[str, Version]) -> bool:
    """True when the version satisfies the constraint."""
    parsed = _as_constraint(constraint)
    if parsed.is_any:
        return True
    candidate = _as_version(version)
    return any(_set_matches(comparators, candidate) for comparators in parsed.alternatives)


def satisfied_by(versions: Iterable[str], constraint: Union[str, Constraint, None]) -> List[str]:
    """Filter raw version strings down to those satisfying the constraint, keeping order."""
    parsed = _as_constraint(constraint)
    return [v for v in versions if matches(parsed, v)]


def is_open_ended(constraint: Union[str, Constraint, None], latest: Optional[Version] = None) -> bool:
    """True when a release newer than ``latest`` could still satisfy the constraint.

    With no known release every constraint is considered open.
    """
    parsed = _as_constraint(constraint)
    edge = parsed.upper_edge
    if edge is None or latest is None:
        return True
    return edge > latest


def is_well_formed(text: Optional[str]) -> bool:
    """True when the text parses without dropping anything and is standard range syntax.

    Meant for warning authors; resolution never rejects text.
    """
    stripped = (text or "").strip()
    if not stripped or is_legacy_sentinel(stripped):
        return True
    if parse_constraint(stripped).degraded:
        return False
    try:
        semantic_version.NpmSpec(stripped)
        return True
    except ValueError:
        pass
    try:
        semantic_version.SimpleSpec(stripped)
        return True
    except ValueError:
        return False


__all__ = [
    "ANY_CONSTRAINT",
    "is_legacy_sentinel",
    "is_open_ended",
    "is_well_formed",
    "matches",
    "parse_constraint",
    "satisfied_by",
]
