"""Dependency and runtime compatibility resolution."""

from .models import (
    AddonCompatibilityResult,
    AddonVersion,
    BatchReport,
    CompatibilityResult,
    DependableKind,
    DependableRef,
    Dependency,
    ModVersion,
    ResolutionError,
    ResolutionState,
    ResolvedDependency,
    RuntimeRelease,
)
from .addon import AddonCompatibilityResolver
from .cache import ResolutionCache
from .dependency import DependencyResolver
from .compatibility import CompatibilityResolver
from .coordinator import ResolutionCoordinator
from .tree import DependencyNode, build_dependency_tree, collect_constraints

__all__ = [
    "AddonCompatibilityResult",
    "AddonVersion",
    "AddonCompatibilityResolver",
    "BatchReport",
    "CompatibilityResult",
    "DependableKind",
    "DependableRef",
    "Dependency",
    "ModVersion",
    "ResolutionError",
    "ResolutionState",
    "ResolvedDependency",
    "RuntimeRelease",
    "ResolutionCache",
    "DependencyResolver",
    "CompatibilityResolver",
    "ResolutionCoordinator",
    "DependencyNode",
    "build_dependency_tree",
    "collect_constraints",
]
