"""Dependency resolver: picks the concrete version that satisfies each declared dependency."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from common.logging_utils import Timer, extra_context, is_debug_enabled
from versioning.constraint import matches, parse_constraint
from versioning.models import Constraint, Version
from versioning.parser import parse_version

from .models import DependableRef, Dependency, ModVersion, ResolvedDependency, published_timestamp

if TYPE_CHECKING:
    from .cache import ResolutionCache

logger = logging.getLogger(__name__)


def _rank(candidate: ModVersion) -> Tuple[Version, float, int]:
    # Highest version wins; equal versions prefer the most recently published record.
    return candidate.parsed, published_timestamp(candidate.published_at), candidate.id


def best_match(
    constraint: Union[str, Constraint, None],
    candidates: Iterable[ModVersion],
    mod_id: Optional[int] = None,
) -> Optional[ModVersion]:
    """Return the highest-ranked candidate satisfying the constraint, or None."""
    parsed = constraint if isinstance(constraint, Constraint) else parse_constraint(constraint)
    best: Optional[ModVersion] = None
    for candidate in candidates:
        if mod_id is not None and candidate.mod_id != mod_id:
            continue
        if not matches(parsed, candidate.parsed):
            continue
        if best is None or _rank(candidate) > _rank(best):
            best = candidate
    return best


class DependencyResolver:
    """Resolves one dependable's declared dependencies against eligible candidates.

    Looks a single hop from the dependable; cycles and transitive walks are
    the caller's business. Candidates are trusted to be already filtered
    for eligibility.
    """

    def select(self, dependency: Dependency, candidates: Sequence[ModVersion]) -> Optional[ModVersion]:
        """Pick the target version for one dependency, or None when unsatisfied."""
        return best_match(dependency.parsed_constraint, candidates, dependency.target_mod_id)

    def resolve(
        self,
        dependable: DependableRef,
        dependencies: Iterable[Dependency],
        candidates: Mapping[int, Sequence[ModVersion]],
    ) -> List[ResolvedDependency]:
        """Resolve every dependency of ``dependable``.

        Args:
            dependable: The mod or add-on version declaring the dependencies.
            dependencies: Its full current declaration set.
            candidates: Eligible versions keyed by target mod id.

        Returns:
            One ResolvedDependency per dependency, ordered by dependency id.

        Raises:
            ValueError: if a dependency belongs to a different dependable.
        """
        rows: List[ResolvedDependency] = []
        with Timer() as t:
            for dependency in sorted(dependencies, key=lambda d: d.id):
                if dependency.dependable != dependable:
                    raise ValueError(
                        f"Dependency {dependency.id} belongs to {dependency.dependable}, not {dependable}"
                    )
                target = self.select(dependency, candidates.get(dependency.target_mod_id, ()))
                rows.append(ResolvedDependency(dependable, dependency, target))

        if is_debug_enabled(logger):
            logger.debug(
                "Dependencies resolved",
                extra=extra_context(
                    event="function_exit",
                    component="dependency_resolver",
                    action="resolve",
                    entity=dependable.key,
                    count=len(rows),
                    unsatisfied=sum(1 for r in rows if not r.satisfied),
                    duration_ms=t.duration_ms(),
                ),
            )
        return rows

    def find_satisfying_version(
        self,
        candidates: Iterable[ModVersion],
        constraint: Union[str, Constraint, None],
        runtime_version: str,
        cache: "ResolutionCache",
    ) -> Optional[ModVersion]:
        """Best candidate satisfying the constraint that is compatible with a runtime release.

        Compatibility is read from the cache; versions never resolved for
        compatibility are not considered.
        """
        wanted = parse_version(runtime_version)
        compatible = []
        for candidate in candidates:
            result = cache.compatibility_for(candidate.id)
            if result is None:
                continue
            if any(release.parsed == wanted for release in result.matches):
                compatible.append(candidate)
        return best_match(constraint, compatible)
