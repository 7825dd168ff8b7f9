"""Transitive dependency tree read back from cached resolution rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .cache import ResolutionCache
from .models import DependableKind, DependableRef, Dependency, ModVersion


@dataclass
class DependencyNode:
    """One satisfied edge and the edges below its target."""
    dependency: Dependency
    target: ModVersion
    dependencies: List["DependencyNode"] = field(default_factory=list)


def build_dependency_tree(
    cache: ResolutionCache,
    root: DependableRef,
    visited: Optional[Set[DependableRef]] = None,
) -> Optional[List[DependencyNode]]:
    """Walk satisfied rows from ``root`` downwards.

    A dependable is expanded at most once per walk, so cycles terminate.
    Returns None when ``root`` was already visited.
    """
    if visited is None:
        visited = set()
    if root in visited:
        return None
    visited.add(root)

    nodes: List[DependencyNode] = []
    for row in cache.dependencies_for(root) or ():
        if row.target is None:
            continue
        node = DependencyNode(row.dependency, row.target)
        child = DependableRef(DependableKind.MOD_VERSION, row.target.id)
        node.dependencies = build_dependency_tree(cache, child, visited) or []
        nodes.append(node)
    return nodes


def collect_constraints(tree: List[DependencyNode]) -> Dict[int, List[str]]:
    """Every declared constraint per target mod id, in walk order."""
    collected: Dict[int, List[str]] = {}
    stack = list(reversed(tree))
    while stack:
        node = stack.pop()
        collected.setdefault(node.dependency.target_mod_id, []).append(node.dependency.constraint)
        stack.extend(reversed(node.dependencies))
    return collected
