# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""AnalysisSession - owner of packages, cache and watchers for one session.

Key Responsibilities:
- Register analyzed packages (identity, provider, entry file)
- Serve dependency trees from the cache, building on demand
- Invalidate cached trees on re-analysis, removal, or file changes
- Surface cycles and missing files as structured warnings
- Manage component lifecycle (created at session start, closed at end)
"""

import collections
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Counter, Dict, List, Optional, Set

from include_tree.builder import DependencyTreeBuilder
from include_tree.cache import TreeCache
from include_tree.config import Config
from include_tree.export import GraphExport, export_graph, format_cycles
from include_tree.logging_setup import log_package_warning
from include_tree.models import DependencyTree
from include_tree.package_watcher import PackageWatcher
from include_tree.providers import DirectoryProvider, SourceTextProvider

logger = logging.getLogger(__name__)


class UnknownPackageError(KeyError):
    """Raised when a package id has not been registered with the session."""

    pass


@dataclass(frozen=True)
class RegisteredPackage:
    """A package known to the session."""

    package_id: str
    provider: SourceTextProvider
    entry_path: str


class AnalysisSession:
    """Coordinator for dependency tree analysis within one session.

    Owned Components:
    - TreeCache: Trees keyed by package identity
    - PackageWatcher per watched directory package

    Usage:
        with AnalysisSession(config) as session:
            session.register_package("pkg-1", MappingProvider(files), "entry.lua")
            tree = session.get_tree("pkg-1")
            session.reanalyze("pkg-1")

    Thread Safety:
    - Package and watcher registries are protected by _lock
    - Trees are built outside any lock; the cache only stores finished trees
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        cache: Optional[TreeCache] = None,
        session_id: Optional[str] = None,
    ):
        """Initialize the session.

        Args:
            config: Configuration object (default: loads from default location)
            cache: Tree cache (default: new TreeCache bounded by config.cache_max_entries)
            session_id: Session identifier for log records (default: generated UUID)
        """
        self.config = config if config is not None else Config()
        self.cache = (
            cache if cache is not None else TreeCache(max_entries=self.config.cache_max_entries)
        )
        self.session_id = session_id or str(uuid.uuid4())

        self._packages: Dict[str, RegisteredPackage] = {}
        self._watchers: Dict[str, PackageWatcher] = {}
        self._lock = Lock()
        self._warning_counts: Counter[str] = collections.Counter()

        logger.info(f"AnalysisSession {self.session_id} started")

    def __enter__(self) -> "AnalysisSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # Package registry

    def register_package(
        self,
        package_id: str,
        provider: SourceTextProvider,
        entry_path: Optional[str] = None,
    ) -> RegisteredPackage:
        """Register a package, replacing any previous analysis under the same id.

        Re-registering an id counts as re-analysis: the cached tree is
        invalidated and any watcher for the old provider is stopped.

        Args:
            package_id: Identity of this analyzed package instance.
            provider: Source text provider for the package's files.
            entry_path: Entry file (default: config.default_entry_path).

        Returns:
            The registered package.
        """
        if not package_id:
            raise ValueError("package_id must be a non-empty string")

        package = RegisteredPackage(
            package_id=package_id,
            provider=provider,
            entry_path=entry_path or self.config.default_entry_path,
        )
        with self._lock:
            replacing = package_id in self._packages
            self._packages[package_id] = package
            old_watcher = self._watchers.pop(package_id, None)

        if old_watcher is not None:
            old_watcher.stop()
        if replacing:
            self.cache.invalidate(package_id)
            logger.info(f"Package {package_id} re-registered, cached tree invalidated")
        else:
            logger.info(f"Package {package_id} registered (entry: {package.entry_path})")
        return package

    def register_directory(
        self,
        package_root: str,
        package_id: Optional[str] = None,
        entry_path: Optional[str] = None,
    ) -> str:
        """Register an extracted package directory.

        Args:
            package_root: Directory holding the package files.
            package_id: Identity (default: the resolved directory path).
            entry_path: Entry file (default: config.default_entry_path).

        Returns:
            The package id used.

        Raises:
            NotADirectoryError: If package_root is not a directory.
        """
        root = Path(package_root).resolve()
        if not root.is_dir():
            raise NotADirectoryError(f"Package root is not a directory: {package_root}")

        pid = package_id or str(root)
        self.register_package(pid, DirectoryProvider(str(root)), entry_path)
        return pid

    def has_package(self, package_id: str) -> bool:
        with self._lock:
            return package_id in self._packages

    def package_ids(self) -> List[str]:
        with self._lock:
            return list(self._packages)

    def get_package(self, package_id: str) -> RegisteredPackage:
        """Look up a registered package.

        Raises:
            UnknownPackageError: If package_id is not registered.
        """
        with self._lock:
            package = self._packages.get(package_id)
        if package is None:
            raise UnknownPackageError(package_id)
        return package

    def remove_package(self, package_id: str) -> None:
        """Forget a package, its cached tree and its watcher.

        Raises:
            UnknownPackageError: If package_id is not registered.
        """
        with self._lock:
            if package_id not in self._packages:
                raise UnknownPackageError(package_id)
            del self._packages[package_id]
            watcher = self._watchers.pop(package_id, None)

        if watcher is not None:
            watcher.stop()
        self.cache.invalidate(package_id)
        logger.info(f"Package {package_id} removed")

    # Trees

    def get_tree(self, package_id: str) -> DependencyTree:
        """Return the package's tree, building and caching it on a miss.

        Raises:
            UnknownPackageError: If package_id is not registered.
        """
        package = self.get_package(package_id)
        return self.cache.get_or_build(package_id, lambda: self._build(package))

    def reanalyze(self, package_id: str) -> DependencyTree:
        """Discard the cached tree and rebuild it.

        Raises:
            UnknownPackageError: If package_id is not registered.
        """
        self.get_package(package_id)
        self.cache.invalidate(package_id)
        return self.get_tree(package_id)

    def invalidate(self, package_id: str) -> bool:
        """Drop the cached tree for a package. Returns True if one was cached."""
        return self.cache.invalidate(package_id)

    def export_package(self, package_id: str) -> GraphExport:
        """Graph export of the package's tree, with the package id in metadata.

        Raises:
            UnknownPackageError: If package_id is not registered.
        """
        export = export_graph(self.get_tree(package_id))
        export["metadata"]["package_id"] = package_id
        export["metadata"]["session_id"] = self.session_id
        return export

    def _build(self, package: RegisteredPackage) -> DependencyTree:
        builder = DependencyTreeBuilder.from_config(package.provider, self.config)
        tree = builder.build(package.entry_path)
        self._emit_warnings(package, tree)
        return tree

    def _emit_warnings(self, package: RegisteredPackage, tree: DependencyTree) -> None:
        """Log analysis findings for a freshly built tree to warnings.jsonl."""
        package_id = package.package_id

        if self.config.log_cycle_warnings:
            for cycle, chain in zip(tree.cycles, format_cycles(tree)):
                self._warn(
                    "cycle",
                    package_id,
                    f"Circular include chain in {package_id}: {chain}",
                    cycle=list(cycle),
                )

        if self.config.log_missing_file_warnings:
            for path in tree.missing_paths():
                self._warn(
                    "missing_file",
                    package_id,
                    f"Missing include target in {package_id}: {path}",
                    path=path,
                )

        reported: Set[str] = set()
        for node in tree.iter_nodes():
            if node.error is not None and node.path not in reported:
                reported.add(node.path)
                self._warn(
                    "provider_error",
                    package_id,
                    f"Could not read {node.path} in {package_id}: {node.error}",
                    path=node.path,
                    error=node.error,
                )

        if tree.truncated:
            self._warn(
                "truncated",
                package_id,
                f"Dependency tree for {package_id} truncated at "
                f"{self.config.max_nodes} nodes",
                max_nodes=self.config.max_nodes,
            )

    def _warn(self, kind: str, package_id: str, message: str, **fields: Any) -> None:
        log_package_warning(kind, package_id, message, session_id=self.session_id, **fields)
        with self._lock:
            self._warning_counts[kind] += 1

    def get_warning_statistics(self) -> Dict[str, Any]:
        """Warnings logged by this session, in total and per kind."""
        with self._lock:
            by_kind = dict(self._warning_counts)
        return {"total_warnings": sum(by_kind.values()), "by_kind": by_kind}

    # Watching

    def watch_package(self, package_id: str) -> PackageWatcher:
        """Start invalidating the package's tree when its directory changes.

        Raises:
            UnknownPackageError: If package_id is not registered.
            ValueError: If the package is not directory-backed.
        """
        package = self.get_package(package_id)
        if not isinstance(package.provider, DirectoryProvider):
            raise ValueError(f"Package {package_id} is not backed by a directory")

        with self._lock:
            existing = self._watchers.get(package_id)
        if existing is not None and existing.is_running():
            return existing

        watcher = PackageWatcher(
            package_id,
            str(package.provider.package_root),
            watched_extensions=self.config.watched_extensions,
        )
        watcher.register_invalidation_callback(self.cache.invalidate)
        watcher.start()
        with self._lock:
            self._watchers[package_id] = watcher
        return watcher

    def is_watching(self, package_id: str) -> bool:
        with self._lock:
            watcher = self._watchers.get(package_id)
        return watcher is not None and watcher.is_running()

    # Lifecycle

    def get_cache_statistics(self) -> Dict[str, Any]:
        stats = self.cache.get_statistics().to_dict()
        stats["hit_rate"] = self.cache.get_hit_rate()
        return stats

    def close(self) -> None:
        """Stop watchers and discard all packages and cached trees."""
        with self._lock:
            watchers = list(self._watchers.values())
            self._watchers.clear()
            self._packages.clear()

        for watcher in watchers:
            watcher.stop()
        self.cache.clear()
        logger.info(f"AnalysisSession {self.session_id} closed")
