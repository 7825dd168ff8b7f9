"""Version parsing, ordering and constraint evaluation."""

from .models import ANY_CONSTRAINT, Bound, Comparator, Constraint, ConstraintKind, Version
from .parser import parse_version, sort_versions
from .constraint import is_open_ended, is_well_formed, matches, parse_constraint, satisfied_by

__all__ = [
    "ANY_CONSTRAINT",
    "Bound",
    "Comparator",
    "Constraint",
    "ConstraintKind",
    "Version",
    "parse_version",
    "sort_versions",
    "is_open_ended",
    "is_well_formed",
    "matches",
    "parse_constraint",
    "satisfied_by",
]
