"""Data models for dependency and runtime compatibility resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

from constants import Constants
from versioning.constraint import parse_constraint
from versioning.models import Constraint, Version
from versioning.parser import parse_version

if TYPE_CHECKING:
    from .cache import ResolutionCache


def now_like(reference: Optional[datetime]) -> datetime:
    """Current time, naive or aware to match the reference timestamp."""
    current = datetime.now(timezone.utc)
    if reference is not None and reference.tzinfo is None:
        return current.replace(tzinfo=None)
    return current


def published_timestamp(value: Optional[datetime]) -> float:
    """Sortable publish time; unpublished sorts oldest."""
    return value.timestamp() if value is not None else float("-inf")


class DependableKind(Enum):
    """Artifact-version kinds that can declare dependencies."""
    MOD_VERSION = "mod_version"
    ADDON_VERSION = "addon_version"


@dataclass(frozen=True)
class DependableRef:
    """Tagged reference to the subject of a dependency edge."""
    kind: DependableKind
    id: int

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.id}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class ModVersion:
    """A mod version as supplied by the persistence layer."""
    id: int
    mod_id: int
    version: str
    published_at: Optional[datetime] = None
    disabled: bool = False
    deleted: bool = False

    @cached_property
    def parsed(self) -> Version:
        return parse_version(self.version)

    def is_eligible(
        self,
        now: Optional[datetime] = None,
        compatibility: Optional["ResolutionCache"] = None,
    ) -> bool:
        """Published at or before ``now``, not disabled, not deleted.

        With a ``compatibility`` cache the version must also have a cached
        result matching at least one published runtime release.
        """
        if self.published_at is None or self.disabled or self.deleted:
            return False
        current = now if now is not None else now_like(self.published_at)
        if self.published_at > current:
            return False
        if compatibility is not None:
            result = compatibility.compatibility_for(self.id)
            return result is not None and bool(result.matches)
        return True


def eligible_candidates(
    candidates: Iterable[ModVersion],
    now: Optional[datetime] = None,
    compatibility: Optional["ResolutionCache"] = None,
) -> List[ModVersion]:
    """Keep only publicly visible versions, preserving order."""
    return [c for c in candidates if c.is_eligible(now, compatibility)]


@dataclass(frozen=True)
class Dependency:
    """A declared edge from a dependable to a target mod.

    ``resolved_target_id`` carries the target picked by a previous run, when known.
    """
    id: int
    dependable: DependableRef
    target_mod_id: int
    constraint: str = ""
    resolved_target_id: Optional[int] = None

    @cached_property
    def parsed_constraint(self) -> Constraint:
        return parse_constraint(self.constraint)


class ResolutionState(Enum):
    """Cache state of a single dependency edge."""
    UNRESOLVED = "unresolved"  # resolver has not run for this edge
    SATISFIED = "satisfied"
    UNSATISFIED = "unsatisfied"  # resolver ran, nothing matched


@dataclass(frozen=True)
class ResolvedDependency:
    """Resolution outcome for one dependency; ``target`` is None when unsatisfied."""
    dependable: DependableRef
    dependency: Dependency
    target: Optional[ModVersion]

    @property
    def satisfied(self) -> bool:
        return self.target is not None

    @property
    def state(self) -> ResolutionState:
        return ResolutionState.SATISFIED if self.satisfied else ResolutionState.UNSATISFIED

    @property
    def target_id(self) -> Optional[int]:
        return self.target.id if self.target is not None else None

    @property
    def changed(self) -> bool:
        """True when the target differs from the one recorded on the dependency."""
        return self.target_id != self.dependency.resolved_target_id

    def as_row(self) -> Dict[str, Any]:
        return {
            "dependable_type": self.dependable.kind.value,
            "dependable_id": self.dependable.id,
            "dependency_id": self.dependency.id,
            "resolved_mod_version_id": self.target_id,
        }


@dataclass(frozen=True)
class RuntimeRelease:
    """A runtime (SPT) release. Unpublished releases have no publish date or one in the future."""
    id: int
    version: str
    publish_date: Optional[datetime] = None
    color_class: str = ""
    link: str = ""

    @cached_property
    def parsed(self) -> Version:
        return parse_version(self.version)

    @property
    def formatted(self) -> str:
        return f"{Constants.RUNTIME_LABEL_PREFIX} {self.version}"

    @property
    def is_legacy_sentinel(self) -> bool:
        return self.parsed == parse_version(Constants.LEGACY_UNCONSTRAINED_SENTINEL)

    def is_published(self, now: Optional[datetime] = None) -> bool:
        if self.publish_date is None:
            return False
        current = now if now is not None else now_like(self.publish_date)
        return self.publish_date <= current


@dataclass(frozen=True)
class CompatibilityRow:
    """One (mod version, runtime release) pairing."""
    mod_version_id: int
    release: RuntimeRelease
    pinned: bool

    def as_row(self) -> Dict[str, Any]:
        return {
            "mod_version_id": self.mod_version_id,
            "spt_version_id": self.release.id,
            "pinned": self.pinned,
        }


@dataclass(frozen=True)
class CompatibilityResult:
    """Runtime releases matched by a mod version's constraint."""
    mod_version: ModVersion
    constraint: str
    matches: Tuple[RuntimeRelease, ...]
    pinned: bool

    @property
    def rows(self) -> List[CompatibilityRow]:
        return [CompatibilityRow(self.mod_version.id, release, self.pinned) for release in self.matches]

    @property
    def release_ids(self) -> List[int]:
        return [release.id for release in self.matches]


@dataclass(frozen=True)
class AddonVersion:
    """An add-on version and the constraint it declares on its parent mod's versions.

    ``mod_id`` is None for add-ons detached from a parent mod.
    """
    id: int
    addon_id: int
    mod_id: Optional[int]
    version: str
    mod_version_constraint: str = ""

    @cached_property
    def parsed(self) -> Version:
        return parse_version(self.version)

    @property
    def ref(self) -> DependableRef:
        return DependableRef(DependableKind.ADDON_VERSION, self.id)


@dataclass(frozen=True)
class AddonCompatibilityResult:
    """Parent mod versions satisfying an add-on version's constraint, newest first."""
    addon_version: AddonVersion
    constraint: str
    matches: Tuple[ModVersion, ...]

    @property
    def mod_version_ids(self) -> List[int]:
        return [mod_version.id for mod_version in self.matches]

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return [
            {"addon_version_id": self.addon_version.id, "mod_version_id": mod_version.id}
            for mod_version in self.matches
        ]


class ResolutionError(RuntimeError):
    """A resolution unit failed after exhausting its retries."""


@dataclass
class BatchReport:
    """Outcome of a fan-out; each entity succeeds or fails on its own."""
    succeeded: List[Any] = field(default_factory=list)
    failed: Dict[Any, str] = field(default_factory=dict)
    skipped: List[Any] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed
