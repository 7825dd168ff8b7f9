"""Data models for versions and version constraints."""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .natural import compare_versions


@functools.total_ordering
@dataclass(frozen=True)
class Version:
    """Parsed version: numeric triplet plus ordered pre-release/build labels.

    ``raw`` keeps the text as authored and does not take part in equality,
    so ``v2.1.0`` and ``2.1.0`` compare equal. ``build_start`` marks where
    build identifiers begin inside ``labels`` and only affects display.
    """
    major: int = 0
    minor: int = 0
    patch: int = 0
    labels: Tuple[str, ...] = ()
    raw: str = field(default="", compare=False)
    build_start: Optional[int] = field(default=None, compare=False)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self, other) < 0

    @property
    def is_prerelease(self) -> bool:
        """True when any label is present."""
        return bool(self.labels)

    @property
    def core(self) -> Tuple[int, int, int]:
        return self.major, self.minor, self.patch

    @property
    def prerelease(self) -> Tuple[str, ...]:
        end = len(self.labels) if self.build_start is None else self.build_start
        return self.labels[:end]

    @property
    def build(self) -> Tuple[str, ...]:
        if self.build_start is None:
            return ()
        return self.labels[self.build_start:]

    @property
    def normalized(self) -> str:
        """Render as ``major.minor.patch[-prerelease][+build]``."""
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def __str__(self) -> str:
        return self.raw or self.normalized


@dataclass(frozen=True)
class Bound:
    """One edge of a version window."""
    version: Version
    inclusive: bool


class ConstraintKind(Enum):
    """Shape of a parsed constraint."""
    ANY = "any"
    EXACT = "exact"
    COMPARISON = "comparison"
    CARET = "caret"
    TILDE = "tilde"
    WILDCARD = "wildcard"
    COMPOUND = "compound"  # several comparators that must all hold
    UNION = "union"  # "||" alternatives


@dataclass(frozen=True)
class Comparator:
    """A single primitive predicate lowered to a version window.

    For the ``!=`` operator the window describes what is excluded.
    """
    kind: ConstraintKind
    operator: str
    target: Version
    lower: Optional[Bound] = None
    upper: Optional[Bound] = None

    @property
    def excludes(self) -> bool:
        return self.operator == "!="

    def _in_window(self, version: Version) -> bool:
        if self.lower is not None:
            if version < self.lower.version:
                return False
            if version == self.lower.version and not self.lower.inclusive:
                return False
        if self.upper is not None:
            if version > self.upper.version:
                return False
            if version == self.upper.version and not self.upper.inclusive:
                return False
        return True

    def contains(self, version: Version) -> bool:
        """Window test, ignoring the pre-release opt-in policy."""
        inside = self._in_window(version)
        return not inside if self.excludes else inside

    @property
    def upper_edge(self) -> Optional[Version]:
        """Highest version this comparator can admit; None when unbounded."""
        if self.excludes or self.upper is None:
            return None
        return self.upper.version


ComparatorSet = Tuple[Comparator, ...]


@dataclass(frozen=True)
class Constraint:
    """Parsed constraint: a union of comparator sets.

    No alternatives at all is the universal constraint. ``raw`` and
    ``degraded`` are informational and excluded from equality.
    """
    alternatives: Tuple[ComparatorSet, ...] = ()
    raw: str = field(default="", compare=False)
    degraded: bool = field(default=False, compare=False)

    @property
    def is_any(self) -> bool:
        return not self.alternatives

    @property
    def kind(self) -> ConstraintKind:
        if not self.alternatives:
            return ConstraintKind.ANY
        if len(self.alternatives) > 1:
            return ConstraintKind.UNION
        only = self.alternatives[0]
        if len(only) == 1:
            return only[0].kind
        return ConstraintKind.COMPOUND

    @property
    def upper_edge(self) -> Optional[Version]:
        """Highest version any alternative can admit; None when unbounded."""
        if not self.alternatives:
            return None
        edges = []
        for comparators in self.alternatives:
            set_edges = [c.upper_edge for c in comparators if c.upper_edge is not None]
            if not set_edges:
                return None
            edges.append(min(set_edges))
        return max(edges)

    def __str__(self) -> str:
        return self.raw


ANY_CONSTRAINT = Constraint()
