"""Resolution cache holding the latest resolver outputs per entity.

Every write replaces an entity's rows wholesale so readers never observe a
mix of old and new results. Per-entity locks let callers serialize the
read-compute-replace cycle for one entity while other entities proceed.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Optional, Tuple

from .models import (
    AddonCompatibilityResult,
    CompatibilityResult,
    DependableRef,
    ModVersion,
    ResolutionState,
    ResolvedDependency,
)


class _EntityLockEntry:
    """A lock plus the number of callers currently holding or waiting on it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class ResolutionCache:
    """In-memory store of Resolved Dependency rows and compatibility results.

    Subclass and override the ``_store_*``/``_drop_*`` hooks to mirror writes
    into a database; the wholesale replacement contract stays the same.
    """

    def __init__(self):
        """Initialize an empty cache."""
        self._dependencies: Dict[DependableRef, Tuple[ResolvedDependency, ...]] = {}
        self._compatibility: Dict[int, CompatibilityResult] = {}
        self._addon_compatibility: Dict[int, AddonCompatibilityResult] = {}
        self._lock = threading.RLock()
        self._entity_locks: Dict[Hashable, _EntityLockEntry] = {}
        self._entity_locks_guard = threading.Lock()

    @contextmanager
    def entity_lock(self, key: Hashable) -> Iterator[None]:
        """Hold the mutual-exclusion lock for one entity.

        Entries live only while some caller holds or waits on them, so the
        lock table stays proportional to in-flight work.
        """
        with self._entity_locks_guard:
            entry = self._entity_locks.get(key)
            if entry is None:
                entry = _EntityLockEntry()
                self._entity_locks[key] = entry
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._entity_locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entity_locks[key]

    # Resolved dependencies

    def replace_dependencies(self, dependable: DependableRef, rows: Iterable[ResolvedDependency]) -> None:
        """Replace every cached row for ``dependable``.

        Raises:
            ValueError: if a row belongs to another dependable or a dependency repeats.
        """
        rows = tuple(rows)
        seen = set()
        for row in rows:
            if row.dependable != dependable:
                raise ValueError(f"Row for {row.dependable} cannot be stored under {dependable}")
            if row.dependency.id in seen:
                raise ValueError(f"Duplicate row for dependency {row.dependency.id}")
            seen.add(row.dependency.id)

        with self._lock:
            self._store_dependencies(dependable, rows)
            self._dependencies[dependable] = rows

    def dependencies_for(self, dependable: DependableRef) -> Optional[Tuple[ResolvedDependency, ...]]:
        """Cached rows, or None when the dependable has never been resolved."""
        with self._lock:
            return self._dependencies.get(dependable)

    def state(self, dependable: DependableRef, dependency_id: int) -> ResolutionState:
        """Distinguish 'never resolved' from 'resolved to nothing'."""
        rows = self.dependencies_for(dependable)
        if rows is None:
            return ResolutionState.UNRESOLVED
        for row in rows:
            if row.dependency.id == dependency_id:
                return row.state
        return ResolutionState.UNRESOLVED

    def resolved_target(self, dependable: DependableRef, dependency_id: int) -> Optional[ModVersion]:
        for row in self.dependencies_for(dependable) or ():
            if row.dependency.id == dependency_id:
                return row.target
        return None

    def dependables_targeting(self, mod_id: int) -> List[DependableRef]:
        """Dependables with at least one declared dependency on ``mod_id``."""
        with self._lock:
            found = [
                dependable
                for dependable, rows in self._dependencies.items()
                if any(row.dependency.target_mod_id == mod_id for row in rows)
            ]
        return sorted(found, key=lambda ref: (ref.kind.value, ref.id))

    def invalidate_dependencies(self, dependable: DependableRef) -> None:
        """Forget a dependable; it reads as unresolved afterwards."""
        with self._lock:
            if self._dependencies.pop(dependable, None) is not None:
                self._drop_dependencies(dependable)

    # Runtime compatibility

    def replace_compatibility(self, result: CompatibilityResult) -> None:
        """Replace the cached compatibility result for the result's mod version."""
        with self._lock:
            self._store_compatibility(result)
            self._compatibility[result.mod_version.id] = result

    def compatibility_for(self, mod_version_id: int) -> Optional[CompatibilityResult]:
        with self._lock:
            return self._compatibility.get(mod_version_id)

    def compatibility_results(self) -> List[CompatibilityResult]:
        with self._lock:
            return [self._compatibility[key] for key in sorted(self._compatibility)]

    def unpinned_mod_versions(self) -> List[int]:
        """Mod version ids whose compatibility must follow new runtime releases."""
        with self._lock:
            return sorted(key for key, result in self._compatibility.items() if not result.pinned)

    def invalidate_compatibility(self, mod_version_id: int) -> None:
        with self._lock:
            if self._compatibility.pop(mod_version_id, None) is not None:
                self._drop_compatibility(mod_version_id)

    # Add-on compatibility

    def replace_addon_compatibility(self, result: AddonCompatibilityResult) -> None:
        """Replace the cached parent mod versions for the result's add-on version."""
        with self._lock:
            self._store_addon_compatibility(result)
            self._addon_compatibility[result.addon_version.id] = result

    def addon_compatibility_for(self, addon_version_id: int) -> Optional[AddonCompatibilityResult]:
        with self._lock:
            return self._addon_compatibility.get(addon_version_id)

    def addon_versions_for_mod(self, mod_id: int) -> List[int]:
        """Cached add-on version ids whose parent is ``mod_id``."""
        with self._lock:
            return sorted(
                key for key, result in self._addon_compatibility.items()
                if result.addon_version.mod_id == mod_id
            )

    def compatible_addon_versions(self, mod_version_id: int) -> List[int]:
        """Add-on version ids whose cached result includes the mod version."""
        with self._lock:
            return sorted(
                key for key, result in self._addon_compatibility.items()
                if mod_version_id in result.mod_version_ids
            )

    def invalidate_addon_compatibility(self, addon_version_id: int) -> None:
        with self._lock:
            if self._addon_compatibility.pop(addon_version_id, None) is not None:
                self._drop_addon_compatibility(addon_version_id)

    # Housekeeping

    def export_rows(self) -> Dict[str, List[Dict[str, Any]]]:
        """Flat rows for persistence, in a stable order."""
        with self._lock:
            dependency_rows = [
                row.as_row()
                for dependable in sorted(self._dependencies, key=lambda ref: (ref.kind.value, ref.id))
                for row in self._dependencies[dependable]
            ]
            compatibility_rows = [
                row.as_row()
                for key in sorted(self._compatibility)
                for row in self._compatibility[key].rows
            ]
            addon_rows = [
                row
                for key in sorted(self._addon_compatibility)
                for row in self._addon_compatibility[key].rows
            ]
        return {
            "dependencies_resolved": dependency_rows,
            "mod_version_spt_version": compatibility_rows,
            "addon_resolved_mod_versions": addon_rows,
        }

    def clear(self) -> None:
        """Clear all cached entries. Entity locks in use are left to their holders."""
        with self._lock:
            self._dependencies.clear()
            self._compatibility.clear()
            self._addon_compatibility.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            rows = [row for entries in self._dependencies.values() for row in entries]
            stats = {
                "dependables": len(self._dependencies),
                "resolved_rows": len(rows),
                "unsatisfied_rows": sum(1 for row in rows if not row.satisfied),
                "mod_versions": len(self._compatibility),
                "pinned_mod_versions": sum(1 for r in self._compatibility.values() if r.pinned),
                "addon_versions": len(self._addon_compatibility),
            }
        with self._entity_locks_guard:
            stats["entity_locks"] = len(self._entity_locks)
        return stats

    # Persistence hooks, called under the cache lock before the in-memory swap.

    def _store_dependencies(self, dependable: DependableRef, rows: Tuple[ResolvedDependency, ...]) -> None:
        pass

    def _drop_dependencies(self, dependable: DependableRef) -> None:
        pass

    def _store_compatibility(self, result: CompatibilityResult) -> None:
        pass

    def _drop_compatibility(self, mod_version_id: int) -> None:
        pass

    def _store_addon_compatibility(self, result: AddonCompatibilityResult) -> None:
        pass

    def _drop_addon_compatibility(self, addon_version_id: int) -> None:
        pass
