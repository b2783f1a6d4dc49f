# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Source text providers.

A provider answers "what is the text of this archive-relative path?" for one
package. The builder only depends on the abstract interface so packages can
come from an extracted directory, an in-memory mapping, or any other store.

Components:
- SourceTextProvider: Abstract interface
- MappingProvider: In-memory {path: text} mapping
- DirectoryProvider: Files below an extracted package directory
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath
from typing import Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

# Non-source assets commonly shipped in packages; fetched but never parsed
DEFAULT_ASSET_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".ogg", ".wav", ".mp3")


class SourceTextProvider(ABC):
    """Abstract lookup into one package's extracted files.

    Contract:
    - fetch() is synchronous
    - Returns None exactly when the path is absent from the package
    - Content is fixed for the lifetime of one analysis run
    """

    @abstractmethod
    def fetch(self, path: str) -> Optional[str]:
        """Return the text of path, or None if the package has no such file.

        Args:
            path: Archive-relative path (case-sensitive).

        Returns:
            File text, or None when absent.
        """
        pass


class MappingProvider(SourceTextProvider):
    """Provider backed by an in-memory mapping.

    The mapping is copied on construction so later mutation of the caller's
    dict cannot change the package during a run.
    """

    def __init__(self, files: Mapping[str, str]) -> None:
        self._files = dict(files)

    def fetch(self, path: str) -> Optional[str]:
        return self._files.get(path)

    def paths(self) -> Iterable[str]:
        return list(self._files)

    def __len__(self) -> int:
        return len(self._files)


class DirectoryProvider(SourceTextProvider):
    """Provider reading files below an extracted package directory.

    Paths are interpreted relative to package_root using "/" separators.
    Paths that resolve outside the root, directories and absent files all
    yield None. Other read errors (permissions, I/O) propagate so the
    builder can record them on the affected node.
    """

    MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10MB

    def __init__(self, package_root: str) -> None:
        """Initialize provider.

        Args:
            package_root: Directory holding the extracted package files.
        """
        self.package_root = Path(package_root).resolve()

    def resolve(self, path: str) -> Optional[Path]:
        """Map an archive-relative path to a filesystem path under the root.

        Returns:
            Resolved path, or None if the path escapes the package root.
        """
        relative = PurePosixPath(path.replace("\\", "/"))
        if relative.is_absolute():
            return None
        candidate = (self.package_root / Path(*relative.parts)).resolve()
        try:
            candidate.relative_to(self.package_root)
        except ValueError:
            logger.warning(f"Rejecting path outside package root: {path}")
            return None
        return candidate

    def fetch(self, path: str) -> Optional[str]:
        if not path:
            return None
        file_path = self.resolve(path)
        if file_path is None or not file_path.is_file():
            return None

        size = file_path.stat().st_size
        if size > self.MAX_FILE_SIZE_BYTES:
            raise OSError(
                f"{path} is {size} bytes, exceeding the {self.MAX_FILE_SIZE_BYTES} byte limit"
            )

        raw = file_path.read_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"UTF-8 decode failed for {path}, falling back to latin-1")
            return raw.decode("latin-1")


def is_asset_path(path: str, asset_extensions: Iterable[str]) -> bool:
    """Check whether path names a non-source asset (image, audio, ...).

    Args:
        path: Archive-relative path.
        asset_extensions: Extensions including the dot, e.g. ".png".

    Returns:
        True if the path's extension is listed (case-insensitive).
    """
    suffix = PurePosixPath(path.replace("\\", "/")).suffix.lower()
    if not suffix:
        return False
    return suffix in {ext.lower() for ext in asset_extensions}
