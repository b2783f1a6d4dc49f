# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tree cache keyed by package identity.

Stores finished DependencyTrees so repeated access to the same package
instance within a session does not rebuild them.

Key Features:
- Keyed by package identity (one analyzed instance), not by file name
- Explicit invalidation on re-analysis or removal
- Optional LRU bound for sessions holding many packages
- Thread-safe cache operations
- Statistics tracking for cache performance

Design Decisions:
- Uses OrderedDict for LRU implementation (simple, efficient)
- get_or_build() builds outside the lock and only stores finished trees,
  so a reader never observes a partially built tree
- No time-based expiry; entries live until invalidated, evicted or cleared

Thread Safety:
- Single _cache_lock protects: _cache, _stats, _building, _generations
- Build callables run without holding the lock
"""

import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from include_tree.models import CacheEntry, CacheStatistics, DependencyTree

logger = logging.getLogger(__name__)


class TreeCache:
    """Per-session cache of dependency trees.

    Usage:
        cache = TreeCache(max_entries=100)
        tree = cache.get_or_build(package_id, lambda: builder.build("entry.lua"))
        cache.invalidate(package_id)  # after re-analysis
        stats = cache.get_statistics()
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        """Initialize tree cache.

        Args:
            max_entries: Maximum cached packages before LRU eviction.
                None or 0 keeps every entry until invalidated.

        Raises:
            ValueError: If max_entries is negative.
        """
        if max_entries is not None and max_entries < 0:
            raise ValueError(f"max_entries must be >= 0, got {max_entries}")

        self._max_entries = max_entries or None
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        # Invalidation counters guarding get_or_build against storing stale trees.
        # Only ids with a build in flight are tracked.
        self._building: Dict[str, int] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._stats = CacheStatistics()
        self._cache_lock = Lock()

        logger.debug(f"TreeCache initialized with max_entries={self._max_entries}")

    @property
    def max_entries(self) -> Optional[int]:
        return self._max_entries

    def get(self, package_id: str) -> Optional[DependencyTree]:
        """Return the cached tree for a package, or None on a miss.

        Args:
            package_id: Identity of the analyzed package instance.

        Returns:
            Cached DependencyTree, or None if not cached.
        """
        with self._cache_lock:
            entry = self._cache.get(package_id)
            if entry is None:
                self._stats.misses += 1
                logger.debug(f"Cache miss: {package_id}")
                return None

            entry.last_accessed = time.time()
            entry.access_count += 1
            self._stats.hits += 1
            # Move to end of OrderedDict (most recently used)
            self._cache.move_to_end(package_id)

            logger.debug(f"Cache hit: {package_id} (access_count={entry.access_count})")
            return entry.tree

    def put(self, package_id: str, tree: DependencyTree) -> None:
        """Store or overwrite the tree for a package.

        Args:
            package_id: Identity of the analyzed package instance.
            tree: Finished dependency tree.
        """
        with self._cache_lock:
            self._store(package_id, tree)

    def get_or_build(
        self, package_id: str, build: Callable[[], DependencyTree]
    ) -> DependencyTree:
        """Return the cached tree or build, store and return a new one.

        The build callable runs without holding the cache lock. If the
        package is invalidated (or the cache cleared) while building, the
        result is returned to the caller but not stored. If two threads race
        on the same miss, both build and the last store wins.

        Args:
            package_id: Identity of the analyzed package instance.
            build: Zero-argument callable producing the tree.

        Returns:
            Cached or freshly built DependencyTree.
        """
        tree = self.get(package_id)
        if tree is not None:
            return tree

        with self._cache_lock:
            self._building[package_id] = self._building.get(package_id, 0) + 1
            generation = self._generation(package_id)

        try:
            tree = build()
            with self._cache_lock:
                self._stats.builds += 1
                if self._generation(package_id) == generation:
                    self._store(package_id, tree)
                else:
                    logger.debug(f"Discarding tree for {package_id}: invalidated during build")
        finally:
            with self._cache_lock:
                self._finish_build(package_id)
        return tree

    def _generation(self, package_id: str) -> Tuple[int, int]:
        """Current generation of a package id. Caller must hold _cache_lock."""
        return self._epoch, self._generations.get(package_id, 0)

    def _finish_build(self, package_id: str) -> None:
        """Drop build tracking once no build for package_id is in flight. Caller holds the lock."""
        remaining = self._building.get(package_id, 0) - 1
        if remaining > 0:
            self._building[package_id] = remaining
        else:
            self._building.pop(package_id, None)
            self._generations.pop(package_id, None)

    def _store(self, package_id: str, tree: DependencyTree) -> None:
        """Insert an entry. Caller must hold _cache_lock."""
        now = time.time()
        if package_id in self._cache:
            del self._cache[package_id]
        self._cache[package_id] = CacheEntry(
            package_id=package_id,
            tree=tree,
            created_at=now,
            last_accessed=now,
        )

        if self._max_entries is not None:
            self._evict_lru()

        self._stats.current_entry_count = len(self._cache)
        if self._stats.current_entry_count > self._stats.peak_entry_count:
            self._stats.peak_entry_count = self._stats.current_entry_count

        logger.debug(f"Cached tree for {package_id} (entries={len(self._cache)})")

    def _evict_lru(self) -> None:
        """Evict least-recently-used entries beyond max_entries. Caller holds the lock."""
        assert self._max_entries is not None
        evicted_count = 0
        # Items at the beginning are least recently used
        while len(self._cache) > self._max_entries:
            package_id, _ = self._cache.popitem(last=False)
            evicted_count += 1
            logger.debug(f"Evicted LRU entry: {package_id}")

        self._stats.evictions_lru += evicted_count

    def invalidate(self, package_id: str) -> bool:
        """Remove the cached tree for a package.

        Must be called whenever the package is re-analyzed under the same
        identity so a stale tree is never served.

        Args:
            package_id: Identity of the package to invalidate.

        Returns:
            True if an entry was removed, False if nothing was cached.
        """
        with self._cache_lock:
            # Bumped even without an entry so an in-flight build is not stored
            if package_id in self._building:
                self._generations[package_id] = self._generations.get(package_id, 0) + 1
            entry = self._cache.pop(package_id, None)
            self._stats.current_entry_count = len(self._cache)
            if entry is None:
                return False

            self._stats.invalidations += 1
            logger.debug(f"Invalidated cache entry: {package_id}")
            return True

    def contains(self, package_id: str) -> bool:
        """Check for an entry without touching statistics or LRU order."""
        with self._cache_lock:
            return package_id in self._cache

    def package_ids(self) -> List[str]:
        """Cached package ids, least recently used first."""
        with self._cache_lock:
            return list(self._cache)

    def get_entry(self, package_id: str) -> Optional[CacheEntry]:
        """Return entry metadata without counting a hit."""
        with self._cache_lock:
            return self._cache.get(package_id)

    def clear(self) -> None:
        """Clear all cache entries.

        Used for:
        - Session shutdown
        - Testing: Reset cache to clean state
        """
        with self._cache_lock:
            self._cache.clear()
            self._generations.clear()
            self._epoch += 1
            self._stats.current_entry_count = 0

            logger.debug("Cache cleared")

    def __len__(self) -> int:
        with self._cache_lock:
            return len(self._cache)

    def get_statistics(self) -> CacheStatistics:
        """Get cache performance statistics.

        Returns:
            CacheStatistics copy with current metrics.
        """
        with self._cache_lock:
            # Return a copy to avoid external mutation
            return CacheStatistics.from_dict(self._stats.to_dict())

    def get_hit_rate(self) -> float:
        """Calculate cache hit rate.

        Returns:
            Hit rate as percentage (0.0-100.0), or 0.0 if no reads.
        """
        with self._cache_lock:
            total_reads = self._stats.hits + self._stats.misses
            if total_reads == 0:
                return 0.0
            return (self._stats.hits / total_reads) * 100.0
