"""Shared fixtures for resolution tests."""

from datetime import datetime, timedelta

import pytest

from resolution.cache import ResolutionCache
from resolution.models import DependableKind, DependableRef, Dependency, ModVersion, RuntimeRelease

NOW = datetime(2025, 6, 1, 12, 0, 0)


def make_mod_version(id, mod_id, version, days_ago=10, **kwargs):
    """Helper to create a published mod version."""
    published_at = None if days_ago is None else NOW - timedelta(days=days_ago)
    return ModVersion(id=id, mod_id=mod_id, version=version, published_at=published_at, **kwargs)


def make_release(id, version, days_ago=10):
    """Helper to create a runtime release; ``days_ago=None`` leaves it unpublished."""
    publish_date = None if days_ago is None else NOW - timedelta(days=days_ago)
    return RuntimeRelease(id=id, version=version, publish_date=publish_date)


def mod_ref(id):
    return DependableRef(DependableKind.MOD_VERSION, id)


def make_dependency(id, dependable, target_mod_id, constraint="", resolved_target_id=None):
    return Dependency(
        id=id,
        dependable=dependable,
        target_mod_id=target_mod_id,
        constraint=constraint,
        resolved_target_id=resolved_target_id,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def cache():
    """Create a fresh cache for each test."""
    return ResolutionCache()


@pytest.fixture
def releases():
    """Three published runtime releases plus the legacy sentinel."""
    return [
        make_release(1, "0.0.0", days_ago=400),
        make_release(2, "3.8.0", days_ago=300),
        make_release(3, "3.9.0", days_ago=200),
        make_release(4, "3.10.0", days_ago=100),
    ]
