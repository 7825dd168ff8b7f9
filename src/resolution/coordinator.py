"""Trigger entry points that run resolvers and replace cached results.

The surrounding application calls these on version publish/edit, dependency
declaration changes, add-on constraint edits and runtime release
publication. Work for one entity is serialized through the cache's entity
lock; different entities run in parallel during fan-outs, each with its own
retries. Fan-out units read the entity's current declarations from the cache
only once they hold its lock, so an edit that lands while a batch is queued
is never overwritten with the state the batch started from.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import (
    AbstractSet,
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from common.logging_utils import Timer, extra_context, is_debug_enabled
from constants import Constants
from versioning.models import Constraint

from .addon import AddonCompatibilityResolver
from .cache import ResolutionCache
from .compatibility import CompatibilityResolver
from .dependency import DependencyResolver
from .models import (
    AddonCompatibilityResult,
    AddonVersion,
    BatchReport,
    CompatibilityResult,
    DependableRef,
    Dependency,
    ModVersion,
    ResolutionError,
    ResolvedDependency,
    RuntimeRelease,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Returned by a fan-out unit whose entity no longer needs work once locked.
SKIPPED = object()


def _compatibility_key(mod_version_id: int) -> Tuple[str, int]:
    return "compatibility", mod_version_id


def _addon_key(addon_version_id: int) -> Tuple[str, int]:
    return "addon", addon_version_id


class ResolutionCoordinator:
    """Runs read-compute-replace cycles against a ResolutionCache."""

    def __init__(
        self,
        cache: Optional[ResolutionCache] = None,
        dependency_resolver: Optional[DependencyResolver] = None,
        compatibility_resolver: Optional[CompatibilityResolver] = None,
        max_workers: Optional[int] = None,
        retry_max: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        addon_resolver: Optional[AddonCompatibilityResolver] = None,
    ):
        """Initialize the coordinator.

        Args:
            cache: Target cache; a fresh in-memory cache when omitted.
            dependency_resolver: Resolver for dependency edges.
            compatibility_resolver: Resolver for runtime compatibility.
            max_workers: Thread pool size for fan-outs.
            retry_max: Attempts per entity before giving up.
            retry_base_delay: First backoff delay in seconds, doubled per attempt.
            sleep: Sleep function, replaceable in tests.
            addon_resolver: Resolver for add-on to parent mod version compatibility.
        """
        self.cache = cache if cache is not None else ResolutionCache()
        self.dependency_resolver = dependency_resolver or DependencyResolver()
        self.compatibility_resolver = compatibility_resolver or CompatibilityResolver()
        self.addon_resolver = addon_resolver or AddonCompatibilityResolver()
        self._max_workers = max_workers or Constants.RESOLUTION_MAX_WORKERS
        self._retry_max = max(1, retry_max if retry_max is not None else Constants.RESOLUTION_RETRY_MAX)
        self._retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else Constants.RESOLUTION_RETRY_BASE_DELAY_SEC
        )
        self._sleep = sleep

    def _with_retry(self, entity: Any, action: str, unit: Callable[[], T]) -> T:
        """Run one unit of work, retrying with exponential backoff."""
        last_exception: Optional[BaseException] = None
        for attempt in range(self._retry_max):
            try:
                return unit()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                last_exception = exc
                if is_debug_enabled(logger):
                    logger.debug(
                        "Resolution attempt failed",
                        extra=extra_context(
                            event="anomaly",
                            component="coordinator",
                            action=action,
                            entity=str(entity),
                            attempt=attempt + 1,
                            outcome="retry" if attempt + 1 < self._retry_max else "exhausted",
                        ),
                    )
                if attempt + 1 < self._retry_max and self._retry_base_delay > 0:
                    self._sleep(self._retry_base_delay * (2 ** attempt))
        raise ResolutionError(
            f"{action} failed for {entity} after {self._retry_max} attempts: {last_exception}"
        ) from last_exception

    # Dependency resolution

    def _resolve_dependable_once(
        self,
        dependable: DependableRef,
        dependencies: Sequence[Dependency],
        candidates: Mapping[int, Sequence[ModVersion]],
    ) -> Tuple[ResolvedDependency, ...]:
        with self.cache.entity_lock(dependable):
            rows = tuple(self.dependency_resolver.resolve(dependable, dependencies, candidates))
            self.cache.replace_dependencies(dependable, rows)
        return rows

    def resolve_dependable(
        self,
        dependable: DependableRef,
        dependencies: Iterable[Dependency],
        candidates: Mapping[int, Sequence[ModVersion]],
    ) -> Tuple[ResolvedDependency, ...]:
        """Resolve a dependable's full dependency set and replace its cached rows.

        Call on version publish/edit and on dependency create/update/delete.
        An empty declaration set stores an empty (resolved) row set.

        Raises:
            ResolutionError: when every attempt failed.
        """
        dependencies = list(dependencies)
        rows = self._with_retry(
            dependable,
            "resolve_dependencies",
            lambda: self._resolve_dependable_once(dependable, dependencies, candidates),
        )
        changed = [row for row in rows if row.changed]
        if changed:
            logger.info(
                "Resolved %d dependencies for %s (%d changed)", len(rows), dependable, len(changed)
            )
        return rows

    def _refresh_dependable(
        self,
        dependable: DependableRef,
        available: AbstractSet[int],
        candidates: Mapping[int, Sequence[ModVersion]],
    ) -> Any:
        with self.cache.entity_lock(dependable):
            current = self.cache.dependencies_for(dependable)
            if current is None:
                return SKIPPED
            dependencies = [row.dependency for row in current]
            missing = sorted({d.target_mod_id for d in dependencies} - available)
            if missing:
                raise ResolutionError(f"No candidate list supplied for mods {missing}")
            rows = tuple(self.dependency_resolver.resolve(dependable, dependencies, candidates))
            self.cache.replace_dependencies(dependable, rows)
        return rows

    def on_mod_versions_changed(
        self,
        mod_id: int,
        candidates: Mapping[int, Sequence[ModVersion]],
    ) -> BatchReport:
        """Re-resolve every cached dependable that depends on ``mod_id``.

        ``candidates`` must cover every target mod of the affected dependables;
        a dependable with an uncovered target fails on its own in the report.
        Dependables invalidated before their turn are reported as skipped.
        """
        available = frozenset(candidates)
        units: Dict[Hashable, Callable[[], Any]] = {
            dependable: (lambda d=dependable: self._refresh_dependable(d, available, candidates))
            for dependable in self.cache.dependables_targeting(mod_id)
        }
        return self.run_batch(units, "refresh_dependents")

    # Runtime compatibility

    def _resolve_compatibility_once(
        self,
        mod_version: ModVersion,
        constraint: Union[str, Constraint, None],
        releases: Sequence[RuntimeRelease],
        pin: bool,
        now: Optional[datetime],
    ) -> CompatibilityResult:
        with self.cache.entity_lock(_compatibility_key(mod_version.id)):
            result = self.compatibility_resolver.resolve_compatibility(
                mod_version, constraint, releases, pin=pin, now=now
            )
            self.cache.replace_compatibility(result)
        return result

    def resolve_mod_version_compatibility(
        self,
        mod_version: ModVersion,
        constraint: Union[str, Constraint, None],
        releases: Iterable[RuntimeRelease],
        pin: bool = False,
        now: Optional[datetime] = None,
    ) -> CompatibilityResult:
        """Compute and cache runtime compatibility for one mod version.

        Call on version publish and whenever its constraint text changes.

        Raises:
            ResolutionError: when every attempt failed.
        """
        releases = list(releases)
        return self._with_retry(
            mod_version.id,
            "resolve_compatibility",
            lambda: self._resolve_compatibility_once(mod_version, constraint, releases, pin, now),
        )

    def _refresh_compatibility(
        self,
        mod_version_id: int,
        releases: Sequence[RuntimeRelease],
        now: Optional[datetime],
    ) -> Any:
        with self.cache.entity_lock(_compatibility_key(mod_version_id)):
            current = self.cache.compatibility_for(mod_version_id)
            if current is None or not self.compatibility_resolver.needs_refresh_on_release(current):
                return SKIPPED
            result = self.compatibility_resolver.resolve_compatibility(
                current.mod_version, current.constraint, releases, pin=False, now=now
            )
            self.cache.replace_compatibility(result)
        return result

    def on_runtime_release_published(
        self,
        releases: Iterable[RuntimeRelease],
        now: Optional[datetime] = None,
    ) -> BatchReport:
        """Recompute compatibility for every unpinned mod version.

        Pinned results, and results invalidated or pinned before their turn,
        are reported as skipped.
        """
        releases = list(releases)
        pinned = []
        units: Dict[Hashable, Callable[[], Any]] = {}
        for result in self.cache.compatibility_results():
            mod_version_id = result.mod_version.id
            if not self.compatibility_resolver.needs_refresh_on_release(result):
                pinned.append(mod_version_id)
                continue
            units[mod_version_id] = lambda m=mod_version_id: self._refresh_compatibility(m, releases, now)
        report = self.run_batch(units, "refresh_compatibility")
        report.skipped = sorted(set(report.skipped) | set(pinned))
        return report

    # Add-on compatibility

    def _resolve_addon_once(
        self,
        addon_version: AddonVersion,
        mod_versions: Sequence[ModVersion],
        now: Optional[datetime],
    ) -> AddonCompatibilityResult:
        with self.cache.entity_lock(_addon_key(addon_version.id)):
            result = self.addon_resolver.resolve(addon_version, mod_versions, now)
            self.cache.replace_addon_compatibility(result)
        return result

    def resolve_addon_version(
        self,
        addon_version: AddonVersion,
        mod_versions: Iterable[ModVersion],
        now: Optional[datetime] = None,
    ) -> AddonCompatibilityResult:
        """Compute and cache the parent mod versions an add-on version supports.

        Call on add-on version publish and whenever its constraint text changes.

        Raises:
            ResolutionError: when every attempt failed.
        """
        mod_versions = list(mod_versions)
        return self._with_retry(
            _addon_key(addon_version.id),
            "resolve_addon_compatibility",
            lambda: self._resolve_addon_once(addon_version, mod_versions, now),
        )

    def _refresh_addon(
        self,
        addon_version_id: int,
        mod_id: int,
        mod_versions: Sequence[ModVersion],
        now: Optional[datetime],
    ) -> Any:
        with self.cache.entity_lock(_addon_key(addon_version_id)):
            current = self.cache.addon_compatibility_for(addon_version_id)
            if current is None or current.addon_version.mod_id != mod_id:
                return SKIPPED
            result = self.addon_resolver.resolve(current.addon_version, mod_versions, now)
            self.cache.replace_addon_compatibility(result)
        return result

    def on_parent_mod_versions_changed(
        self,
        mod_id: int,
        mod_versions: Iterable[ModVersion],
        now: Optional[datetime] = None,
    ) -> BatchReport:
        """Re-resolve every cached add-on version whose parent is ``mod_id``.

        ``mod_versions`` is the parent mod's full current version list.
        """
        mod_versions = list(mod_versions)
        units: Dict[Hashable, Callable[[], Any]] = {
            addon_version_id: (lambda a=addon_version_id: self._refresh_addon(a, mod_id, mod_versions, now))
            for addon_version_id in self.cache.addon_versions_for_mod(mod_id)
        }
        return self.run_batch(units, "refresh_addons")

    # Fan-out

    def run_batch(self, units: Mapping[Hashable, Callable[[], Any]], action: str = "batch") -> BatchReport:
        """Run independent units in parallel; one failure never affects the others.

        A unit returning ``SKIPPED`` is reported as skipped rather than succeeded.
        """
        report = BatchReport()
        if not units:
            return report

        with Timer() as t:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                futures = {
                    key: pool.submit(self._with_retry, key, action, unit)
                    for key, unit in units.items()
                }
                for key, future in futures.items():
                    try:
                        outcome = future.result()
                    except ResolutionError as exc:
                        report.failed[key] = str(exc)
                        logger.warning("%s failed for %s: %s", action, key, exc)
                        continue
                    if outcome is SKIPPED:
                        report.skipped.append(key)
                    else:
                        report.succeeded.append(key)

        logger.info(
            "%s finished: %d succeeded, %d failed, %d skipped",
            action,
            len(report.succeeded),
            len(report.failed),
            len(report.skipped),
            extra=extra_context(
                event="batch_summary",
                component="coordinator",
                action=action,
                duration_ms=t.duration_ms(),
            ),
        )
        return report
