# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Include dependency tree construction for scripting packages."""

from .builder import DependencyTreeBuilder
from .cache import TreeCache
from .config import Config, ConfigurationError
from .export import GraphExport, export_graph, format_cycles, write_graph_json
from .models import (
    CacheEntry,
    CacheStatistics,
    DependencyNode,
    DependencyTree,
    IncludeEdge,
    canonical_cycle,
)
from .parser import IncludeDirectiveParser
from .providers import DirectoryProvider, MappingProvider, SourceTextProvider, is_asset_path
from .session import AnalysisSession, RegisteredPackage, UnknownPackageError

__version__ = "0.1.0"

__all__ = [
    "IncludeDirectiveParser",
    "DependencyTreeBuilder",
    "TreeCache",
    "SourceTextProvider",
    "MappingProvider",
    "DirectoryProvider",
    "is_asset_path",
    "IncludeEdge",
    "DependencyNode",
    "DependencyTree",
    "CacheEntry",
    "CacheStatistics",
    "canonical_cycle",
    "GraphExport",
    "export_graph",
    "write_graph_json",
    "format_cycles",
    "AnalysisSession",
    "RegisteredPackage",
    "UnknownPackageError",
    "Config",
    "ConfigurationError",
]

# Conditional import for MCP server (requires the mcp package)
try:
    from .mcp_server import IncludeTreeMCPServer

    __all__.append("IncludeTreeMCPServer")
except ImportError:
    # MCP package not available
    pass
