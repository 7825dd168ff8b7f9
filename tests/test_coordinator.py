"""Tests for the resolution coordinator."""

import logging

import pytest

from conftest import NOW, make_dependency, make_mod_version, make_release, mod_ref
from resolution.cache import ResolutionCache
from resolution.compatibility import CompatibilityResolver
from resolution.coordinator import ResolutionCoordinator
from resolution.dependency import DependencyResolver
from resolution.models import DependableKind, DependableRef, ResolutionError


class FlakyCache(ResolutionCache):
    """Cache whose dependency writes fail a configured number of times."""

    def __init__(self, failures=0, failing_keys=None):
        super().__init__()
        self.failures = failures
        self.failing_keys = failing_keys
        self.attempts = 0

    def _store_dependencies(self, dependable, rows):
        self.attempts += 1
        if self.failing_keys is not None and dependable not in self.failing_keys:
            return
        if self.failures:
            self.failures -= 1
            raise OSError("storage unavailable")


@pytest.fixture
def sleeps():
    return []


def make_coordinator(cache, sleeps, **kwargs):
    kwargs.setdefault("retry_max", 3)
    kwargs.setdefault("retry_base_delay", 0.5)
    return ResolutionCoordinator(cache=cache, sleep=sleeps.append, **kwargs)


class TestResolveDependable:
    """Tests for single-entity dependency resolution."""

    def test_resolves_and_stores_rows(self, sleeps):
        coordinator = make_coordinator(ResolutionCache(), sleeps)
        root = mod_ref(1)
        candidates = {2: [make_mod_version(10, 2, "1.0.0"), make_mod_version(11, 2, "1.5.0"), make_mod_version(12, 2, "2.0.0")]}
        rows = coordinator.resolve_dependable(root, [make_dependency(100, root, 2, "^1.0.0")], candidates)
        assert rows[0].target_id == 11
        assert coordinator.cache.resolved_target(root, 100).id == 11

    def test_retries_with_backoff(self, sleeps):
        cache = FlakyCache(failures=2)
        coordinator = make_coordinator(cache, sleeps)
        root = mod_ref(1)
        coordinator.resolve_dependable(root, [make_dependency(100, root, 2)], {2: []})
        assert cache.attempts == 3
        assert sleeps == [0.5, 1.0]
        assert cache.dependencies_for(root) is not None

    def test_raises_after_retries(self, sleeps):
        cache = FlakyCache(failures=5)
        coordinator = make_coordinator(cache, sleeps)
        root = mod_ref(1)
        with pytest.raises(ResolutionError):
            coordinator.resolve_dependable(root, [make_dependency(100, root, 2)], {2: []})
        assert cache.attempts == 3
        assert cache.dependencies_for(root) is None

    def test_invalid_input_fails_as_resolution_error(self, sleeps):
        coordinator = make_coordinator(ResolutionCache(), sleeps, retry_max=1)
        with pytest.raises(ResolutionError):
            coordinator.resolve_dependable(mod_ref(1), [make_dependency(100, mod_ref(2), 3)], {})
        assert sleeps == []


class TestModVersionsChanged:
    """Tests for re-resolving dependents when a mod's versions change."""

    def test_re_resolves_only_dependents(self, sleeps):
        coordinator = make_coordinator(ResolutionCache(), sleeps)
        a, b, c = mod_ref(1), mod_ref(2), DependableRef(DependableKind.ADDON_VERSION, 3)
        coordinator.resolve_dependable(a, [make_dependency(100, a, 50, "^1.0.0")], {50: []})
        coordinator.resolve_dependable(b, [make_dependency(101, b, 60)], {60: []})
        coordinator.resolve_dependable(c, [make_dependency(102, c, 50, "")], {50: []})

        report = coordinator.on_mod_versions_changed(50, {50: [make_mod_version(500, 50, "1.2.0")]})
        assert report.ok
        assert sorted(report.succeeded, key=str) == sorted([a, c], key=str)
        assert coordinator.cache.resolved_target(a, 100).id == 500
        assert coordinator.cache.resolved_target(c, 102).id == 500
        assert coordinator.cache.resolved_target(b, 101) is None

    def test_missing_candidate_list_fails_that_unit_only(self, sleeps):
        coordinator = make_coordinator(ResolutionCache(), sleeps, retry_max=1)
        a, b = mod_ref(1), mod_ref(2)
        coordinator.resolve_dependable(a, [make_dependency(100, a, 50)], {50: []})
        coordinator.resolve_dependable(b, [make_dependency(101, b, 50), make_dependency(102, b, 60)], {50: [], 60: []})

        report = coordinator.on_mod_versions_changed(50, {50: [make_mod_version(500, 50, "1.0.0")]})
        assert report.succeeded == [a]
        assert list(report.failed) == [b]
        assert coordinator.cache.resolved_target(b, 101) is None


class TestRuntimeReleasePublished:
    """Tests for the runtime release fan-out."""

    def test_refreshes_unpinned_and_skips_pinned(self, sleeps, releases):
        coordinator = make_coordinator(ResolutionCache(), sleeps)
        open_version = make_mod_version(10, 1, "1.0.0")
        pinned_version = make_mod_version(11, 1, "1.1.0")
        coordinator.resolve_mod_version_compatibility(open_version, ">=3.9.0", releases, now=NOW)
        coordinator.resolve_mod_version_compatibility(pinned_version, "~3.9.0", releases, now=NOW)

        releases = releases + [make_release(5, "3.11.0", days_ago=1)]
        report = coordinator.on_runtime_release_published(releases, now=NOW)

        assert report.succeeded == [10]
        assert report.skipped == [11]
        assert coordinator.cache.compatibility_for(10).release_ids == [3, 4, 5]
        assert coordinator.cache.compatibility_for(11).release_ids == [3]

    def test_constraint_edit_recomputes_pinned(self, sleeps, releases):
        coordinator = make_coordinator(ResolutionCache(), sleeps)
        mod_version = make_mod_version(11, 1, "1.1.0")
        coordinator.resolve_mod_version_compatibility(mod_version, "~3.9.0", releases, now=NOW)
        result = coordinator.resolve_mod_version_compatibility(mod_version, "~3.10.0", releases, now=NOW)
        assert result.release_ids == [4]
        assert coordinator.cache.compatibility_for(11).constraint == "~3.10.0"

    def test_empty_fan_out(self, sleeps):
        report = make_coordinator(ResolutionCache(), sleeps).on_runtime_release_published([])
        assert report.ok
        assert report.succeeded == []


class EditBeforeLockCache(ResolutionCache):
    """Cache that applies a pending edit just before a key's lock is first taken."""

    def __init__(self):
        super().__init__()
        self.pending = {}

    def entity_lock(self, key):
        edit = self.pending.pop(key, None)
        if edit is not None:
            edit(self)
        return super().entity_lock(key)


class TestFanOutReadsUnderLock:
    """Edits landing between a fan-out's listing and a unit's turn are kept."""

    def test_dependency_edit_is_not_overwritten(self, sleeps):
        cache = EditBeforeLockCache()
        coordinator = make_coordinator(cache, sleeps)
        a, b = mod_ref(1), mod_ref(2)
        coordinator.resolve_dependable(a, [make_dependency(100, a, 50)], {50: []})
        coordinator.resolve_dependable(b, [make_dependency(101, b, 50)], {50: []})
        cache.pending[a] = lambda c: c.replace_dependencies(a, ())

        report = coordinator.on_mod_versions_changed(50, {50: [make_mod_version(500, 50, "1.0.0")]})

        assert report.ok
        assert cache.dependencies_for(a) == ()
        assert cache.resolved_target(b, 101).id == 500

    def test_redeclared_target_outside_candidates_fails_alone(self, sleeps):
        cache = EditBeforeLockCache()
        coordinator = make_coordinator(cache, sleeps, retry_max=1)
        a, b = mod_ref(1), mod_ref(2)
        coordinator.resolve_dependable(a, [make_dependency(100, a, 50)], {50: []})
        coordinator.resolve_dependable(b, [make_dependency(101, b, 50)], {50: []})
        redeclared = DependencyResolver().resolve(
            a, [make_dependency(100, a, 50), make_dependency(102, a, 60)], {50: [], 60: []}
        )
        cache.pending[a] = lambda c: c.replace_dependencies(a, redeclared)

        report = coordinator.on_mod_versions_changed(50, {50: [make_mod_version(500, 50, "1.0.0")]})

        assert list(report.failed) == [a]
        assert report.succeeded == [b]
        assert [row.dependency.id for row in cache.dependencies_for(a)] == [100, 102]

    def test_invalidated_dependable_is_skipped(self, sleeps):
        cache = EditBeforeLockCache()
        coordinator = make_coordinator(cache, sleeps)
        a = mod_ref(1)
        coordinator.resolve_dependable(a, [make_dependency(100, a, 50)], {50: []})
        cache.pending[a] = lambda c: c.invalidate_dependencies(a)

        report = coordinator.on_mod_versions_changed(50, {50: [make_mod_version(500, 50, "1.0.0")]})

        assert report.skipped == [a]
        assert report.succeeded == []
        assert cache.dependencies_for(a) is None

    def test_compatibility_edit_to_pinned_is_skipped(self, sleeps, releases):
        cache = EditBeforeLockCache()
        coordinator = make_coordinator(cache, sleeps)
        mod_version = make_mod_version(10, 1, "1.0.0")
        coordinator.resolve_mod_version_compatibility(mod_version, ">=3.8.0", releases, now=NOW)
        edited = CompatibilityResolver().resolve_compatibility(mod_version, "~3.8.0", releases, now=NOW)
        cache.pending[("compatibility", 10)] = lambda c: c.replace_compatibility(edited)

        releases = releases + [make_release(5, "3.11.0", days_ago=1)]
        report = coordinator.on_runtime_release_published(releases, now=NOW)

        assert report.skipped == [10]
        assert report.succeeded == []
        assert cache.compatibility_for(10).constraint == "~3.8.0"
        assert cache.compatibility_for(10).release_ids == [2]

    def test_compatibility_edit_keeps_new_constraint(self, sleeps, releases):
        cache = EditBeforeLockCache()
        coordinator = make_coordinator(cache, sleeps)
        mod_version = make_mod_version(10, 1, "1.0.0")
        coordinator.resolve_mod_version_compatibility(mod_version, ">=3.8.0", releases, now=NOW)
        edited = CompatibilityResolver().resolve_compatibility(mod_version, ">=3.10.0", releases, now=NOW)
        cache.pending[("compatibility", 10)] = lambda c: c.replace_compatibility(edited)

        releases = releases + [make_release(5, "3.11.0", days_ago=1)]
        report = coordinator.on_runtime_release_published(releases, now=NOW)

        assert report.succeeded == [10]
        assert cache.compatibility_for(10).constraint == ">=3.10.0"
        assert cache.compatibility_for(10).release_ids == [4, 5]

    def test_invalidated_compatibility_is_skipped(self, sleeps, releases):
        cache = EditBeforeLockCache()
        coordinator = make_coordinator(cache, sleeps)
        coordinator.resolve_mod_version_compatibility(make_mod_version(10, 1, "1.0.0"), ">=3.8.0", releases, now=NOW)
        cache.pending[("compatibility", 10)] = lambda c: c.invalidate_compatibility(10)

        report = coordinator.on_runtime_release_published(releases, now=NOW)

        assert report.skipped == [10]
        assert cache.compatibility_for(10) is None


class TestRunBatch:
    """Tests for independent unit execution."""

    def test_partial_failure_does_not_block_others(self, sleeps, caplog):
        coordinator = make_coordinator(ResolutionCache(), sleeps, retry_max=2, retry_base_delay=0.1)
        calls = {"bad": 0}

        def bad():
            calls["bad"] += 1
            raise RuntimeError("boom")

        with caplog.at_level(logging.WARNING, logger="resolution.coordinator"):
            report = coordinator.run_batch({"good": lambda: None, "bad": bad, "also_good": lambda: 1}, "test")

        assert sorted(report.succeeded) == ["also_good", "good"]
        assert "boom" in report.failed["bad"]
        assert not report.ok
        assert calls["bad"] == 2
        assert sleeps == [0.1]
        assert any("test failed for bad" in record.getMessage() for record in caplog.records)

    def test_no_sleep_without_delay(self, sleeps):
        coordinator = make_coordinator(ResolutionCache(), sleeps, retry_base_delay=0)

        def bad():
            raise RuntimeError("boom")

        report = coordinator.run_batch({"bad": bad})
        assert list(report.failed) == ["bad"]
        assert sleeps == []
