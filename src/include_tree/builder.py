# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Dependency tree builder.

Resolves a package's entry file into a DependencyTree by fetching each
file's text, parsing its include directives and expanding them depth-first.

Traversal:
- Explicit frame stack instead of recursion, so deep include chains are
  bounded by the ancestor-stack check and not by the interpreter's
  recursion limit.
- A path already on the ancestor stack becomes a cycle-closing leaf and the
  ancestor slice from its first occurrence is recorded as a cycle.
- Every inclusion occurrence gets its own node. Fetch and parse results are
  memoized per path within one build, so shared files are read once.

Error Recovery:
- Missing files: has_data=False leaves
- Provider exceptions: logged, node degraded to missing with error set
- Node budget exceeded: remaining occurrences dropped, tree marked truncated
The builder never raises for package content; it always returns a tree.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from include_tree.models import Cycle, DependencyNode, DependencyTree, canonical_cycle
from include_tree.parser import IncludeDirectiveParser
from include_tree.providers import DEFAULT_ASSET_EXTENSIONS, SourceTextProvider, is_asset_path

if TYPE_CHECKING:
    from include_tree.config import Config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Lookup:
    """Memoized result of fetching and parsing one path."""

    has_data: bool
    targets: Tuple[str, ...] = ()
    error: Optional[str] = None


@dataclass
class _Frame:
    """A node being expanded; children accumulate until pending is exhausted."""

    node_id: int
    path: str
    depth: int
    pending: Iterator[str]
    children: List[DependencyNode] = field(default_factory=list)


class DependencyTreeBuilder:
    """Builds include trees for one package.

    Usage:
        builder = DependencyTreeBuilder(MappingProvider(files))
        tree = builder.build("entry.lua")
        tree.cycles  # -> (("a.lua", "b.lua"),)

    Thread Safety:
        build() keeps all traversal state local, so one builder can serve
        sequential or concurrent builds over the same immutable provider.
    """

    def __init__(
        self,
        provider: SourceTextProvider,
        parser: Optional[IncludeDirectiveParser] = None,
        asset_extensions: Iterable[str] = DEFAULT_ASSET_EXTENSIONS,
        max_nodes: Optional[int] = None,
    ) -> None:
        """Initialize builder.

        Args:
            provider: Source text provider for the package.
            parser: Directive parser (default: IncludeDirectiveParser()).
            asset_extensions: Extensions fetched but never parsed.
            max_nodes: Maximum nodes to materialize per tree. None for no limit.

        Raises:
            ValueError: If max_nodes is not positive.
        """
        if max_nodes is not None and max_nodes <= 0:
            raise ValueError(f"max_nodes must be positive, got {max_nodes}")

        self.provider = provider
        self.parser = parser if parser is not None else IncludeDirectiveParser()
        self.asset_extensions = tuple(asset_extensions)
        self.max_nodes = max_nodes

    @classmethod
    def from_config(cls, provider: SourceTextProvider, config: "Config") -> "DependencyTreeBuilder":
        """Create a builder using directive names, asset extensions and budget from config."""
        return cls(
            provider=provider,
            parser=IncludeDirectiveParser(config.directive_names),
            asset_extensions=config.asset_extensions,
            max_nodes=config.max_nodes,
        )

    def build(self, entry_path: str) -> DependencyTree:
        """Resolve entry_path into a complete dependency tree.

        Args:
            entry_path: Archive-relative path of the package's entry file.

        Returns:
            DependencyTree rooted at entry_path.
        """
        lookups: Dict[str, _Lookup] = {}
        cycles: Dict[Cycle, Cycle] = {}  # canonical signature -> first discovered form
        truncated = False

        root_lookup = self._lookup(entry_path, lookups)
        if not root_lookup.has_data:
            logger.info(f"Entry file {entry_path} is not available in the package")
            root = DependencyNode(
                node_id=0, path=entry_path, has_data=False, error=root_lookup.error
            )
            return DependencyTree(entry_path=entry_path, root=root)

        next_id = 1
        stack: List[_Frame] = [_Frame(0, entry_path, 0, iter(root_lookup.targets))]
        ancestor_paths: List[str] = [entry_path]
        ancestor_set: Set[str] = {entry_path}
        root_node: Optional[DependencyNode] = None

        while stack:
            frame = stack[-1]
            target = next(frame.pending, None)

            if target is None:
                # Subtree complete: freeze the node and hand it to its parent
                stack.pop()
                ancestor_paths.pop()
                ancestor_set.discard(frame.path)
                node = DependencyNode(
                    node_id=frame.node_id,
                    path=frame.path,
                    has_data=True,
                    children=tuple(frame.children),
                    depth=frame.depth,
                )
                if stack:
                    stack[-1].children.append(node)
                else:
                    root_node = node
                continue

            if self.max_nodes is not None and next_id >= self.max_nodes:
                truncated = True
                logger.warning(
                    f"Node budget of {self.max_nodes} reached while building tree for "
                    f"{entry_path}; remaining includes are omitted"
                )
                for pending_frame in stack:
                    pending_frame.pending = iter(())
                continue

            node_id = next_id
            next_id += 1
            depth = frame.depth + 1

            if target in ancestor_set:
                start = ancestor_paths.index(target)
                self._record_cycle(cycles, tuple(ancestor_paths[start:]))
                frame.children.append(
                    DependencyNode(
                        node_id=node_id,
                        path=target,
                        has_data=True,
                        cycle_closing=True,
                        depth=depth,
                    )
                )
                continue

            lookup = self._lookup(target, lookups)
            if not lookup.has_data or not lookup.targets:
                frame.children.append(
                    DependencyNode(
                        node_id=node_id,
                        path=target,
                        has_data=lookup.has_data,
                        depth=depth,
                        error=lookup.error,
                    )
                )
                continue

            stack.append(_Frame(node_id, target, depth, iter(lookup.targets)))
            ancestor_paths.append(target)
            ancestor_set.add(target)

        assert root_node is not None
        tree = DependencyTree(
            entry_path=entry_path,
            root=root_node,
            cycles=tuple(cycles.values()),
            truncated=truncated,
        )
        logger.debug(
            f"Built tree for {entry_path}: {next_id} nodes, {len(lookups)} files looked up, "
            f"{len(tree.cycles)} cycles"
        )
        return tree

    def _lookup(self, path: str, lookups: Dict[str, _Lookup]) -> _Lookup:
        """Fetch and parse a path once per build."""
        cached = lookups.get(path)
        if cached is not None:
            return cached

        try:
            text = self.provider.fetch(path)
        except Exception as e:
            # One unreadable file must not abort the whole build
            logger.warning(f"Provider failed to fetch {path}: {e}")
            result = _Lookup(has_data=False, error=f"{type(e).__name__}: {e}")
        else:
            if text is None:
                result = _Lookup(has_data=False)
            elif is_asset_path(path, self.asset_extensions):
                result = _Lookup(has_data=True)
            else:
                result = _Lookup(has_data=True, targets=tuple(self.parser.parse(text)))

        lookups[path] = result
        return result

    @staticmethod
    def _record_cycle(cycles: Dict[Cycle, Cycle], cycle: Cycle) -> None:
        signature = canonical_cycle(cycle)
        if signature not in cycles:
            cycles[signature] = cycle
            logger.debug(f"Detected include cycle: {' -> '.join(cycle + cycle[:1])}")
