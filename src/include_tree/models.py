# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Core data models for include dependency trees.

This module defines the data structures shared by the parser, builder,
cache and exporter:
- IncludeEdge: One parsed include directive occurrence
- DependencyNode: One inclusion occurrence in a tree
- DependencyTree: Root node plus the deduplicated list of cycles
- CacheEntry: A cached tree for one package instance
- CacheStatistics: Performance counters for the tree cache

Trees are immutable once built (frozen dataclasses, tuple children) so a
finished tree can be shared between readers without synchronization.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# A cycle is the ordered sequence of distinct paths p1 -> ... -> pn (-> p1)
Cycle = Tuple[str, ...]


@dataclass(frozen=True)
class IncludeEdge:
    """A single include directive found in a source file."""

    from_path: str  # File containing the directive
    to_path: str  # Path named by the directive
    line_number: int  # 1-based line where the directive starts

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "from_path": self.from_path,
            "to_path": self.to_path,
            "line_number": self.line_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IncludeEdge":
        """Deserialize from JSON-compatible dict."""
        return cls(
            from_path=data["from_path"],
            to_path=data["to_path"],
            line_number=data["line_number"],
        )


@dataclass(frozen=True)
class DependencyNode:
    """One inclusion occurrence.

    A file included from two different parents appears as two distinct
    nodes, each with its own node_id. node_id values are assigned in
    pre-order and are unique within one tree.
    """

    node_id: int
    path: str
    has_data: bool  # False when the provider has no file for this path
    children: Tuple["DependencyNode", ...] = ()
    cycle_closing: bool = False  # Re-encounter of an ancestor path, not expanded
    depth: int = 0
    error: Optional[str] = None  # Provider failure message, if any

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the subtree rooted at this node.

        Nested structure is produced iteratively so very deep trees do not
        hit the interpreter recursion limit.
        """
        root_dict = self._shallow_dict()
        stack: List[Tuple["DependencyNode", Dict[str, Any]]] = [(self, root_dict)]
        while stack:
            node, node_dict = stack.pop()
            for child in node.children:
                child_dict = child._shallow_dict()
                node_dict["children"].append(child_dict)
                stack.append((child, child_dict))
        return root_dict

    def _shallow_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "id": self.node_id,
            "path": self.path,
            "has_data": self.has_data,
            "cycle_closing": self.cycle_closing,
            "depth": self.depth,
            "children": [],
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass(frozen=True)
class DependencyTree:
    """A complete include tree rooted at a package's entry file.

    Attributes:
        entry_path: Path resolution started from.
        root: Node for the entry file.
        cycles: Detected cycles, deduplicated by canonical signature.
        truncated: True if the builder stopped materializing nodes because
            its node budget was exhausted.
    """

    entry_path: str
    root: DependencyNode
    cycles: Tuple[Cycle, ...] = ()
    truncated: bool = False

    def iter_nodes(self) -> Iterator[DependencyNode]:
        """Iterate over all nodes in pre-order (node_id order)."""
        stack = [self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_edges(self) -> Iterator[Tuple[DependencyNode, DependencyNode]]:
        """Iterate over (parent, child) node pairs in pre-order."""
        for node in self.iter_nodes():
            for child in node.children:
                yield node, child

    @property
    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    @property
    def max_depth(self) -> int:
        return max(node.depth for node in self.iter_nodes())

    def find_nodes(self, path: str) -> List[DependencyNode]:
        """Return every occurrence of path, in pre-order."""
        return [node for node in self.iter_nodes() if node.path == path]

    def unique_paths(self) -> List[str]:
        """Distinct paths in first-occurrence order."""
        seen: Set[str] = set()
        paths: List[str] = []
        for node in self.iter_nodes():
            if node.path not in seen:
                seen.add(node.path)
                paths.append(node.path)
        return paths

    def missing_paths(self) -> List[str]:
        """Distinct paths the provider could not supply, in first-occurrence order."""
        seen: Set[str] = set()
        paths: List[str] = []
        for node in self.iter_nodes():
            if not node.has_data and node.path not in seen:
                seen.add(node.path)
                paths.append(node.path)
        return paths

    def get_statistics(self) -> Dict[str, Any]:
        """Summary counts for display or export."""
        unique = self.unique_paths()
        missing = self.missing_paths()
        return {
            "total_nodes": self.node_count,
            "unique_files": len(unique),
            "analyzed_files": len(unique) - len(missing),
            "missing_files": len(missing),
            "links": sum(1 for _ in self.iter_edges()),
            "cycles": len(self.cycles),
            "max_depth": self.max_depth,
            "truncated": self.truncated,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a nested JSON-compatible dict."""
        return {
            "entry_path": self.entry_path,
            "root": self.root.to_dict(),
            "cycles": [list(cycle) for cycle in self.cycles],
            "truncated": self.truncated,
        }


@dataclass
class CacheEntry:
    """A cached dependency tree for one package instance."""

    package_id: str
    tree: DependencyTree
    created_at: float  # Unix timestamp when stored
    last_accessed: float  # Unix timestamp of last get()
    access_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize metadata (the tree itself is exported separately)."""
        return {
            "package_id": self.package_id,
            "entry_path": self.tree.entry_path,
            "created_at": self.created_at,
            "last_accessed": self.last_accessed,
            "access_count": self.access_count,
        }


@dataclass
class CacheStatistics:
    """Counters for TreeCache performance."""

    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    evictions_lru: int = 0
    current_entry_count: int = 0
    peak_entry_count: int = 0
    builds: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "invalidations": self.invalidations,
            "evictions_lru": self.evictions_lru,
            "current_entry_count": self.current_entry_count,
            "peak_entry_count": self.peak_entry_count,
            "builds": self.builds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheStatistics":
        """Deserialize from JSON-compatible dict."""
        return cls(
            hits=data.get("hits", 0),
            misses=data.get("misses", 0),
            invalidations=data.get("invalidations", 0),
            evictions_lru=data.get("evictions_lru", 0),
            current_entry_count=data.get("current_entry_count", 0),
            peak_entry_count=data.get("peak_entry_count", 0),
            builds=data.get("builds", 0),
        )


def canonical_cycle(cycle: Cycle) -> Cycle:
    """Return the lexicographically smallest rotation of a cycle.

    Two cycles describing the same loop entered at different points share
    the same canonical form.
    """
    if not cycle:
        return cycle
    rotations = [cycle[i:] + cycle[:i] for i in range(len(cycle))]
    return min(rotations)
