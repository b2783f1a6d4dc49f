# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""MCP Server Protocol Layer for include-tree.

This module implements the MCP protocol layer with ZERO business logic.
All analysis and caching is delegated to AnalysisSession.
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.session import ServerSession

from include_tree.config import Config
from include_tree.logging_setup import get_warning_logger, setup_logging
from include_tree.session import AnalysisSession

logger = logging.getLogger(__name__)

SERVER_NAME = "include-tree"


class IncludeTreeMCPServer:
    """MCP Protocol Layer for include dependency trees.

    Responsibilities:
    - Initialize MCP server and register tools
    - Translate MCP requests to session calls
    - Format session responses as MCP tool results
    - Handle server lifecycle (startup, shutdown)

    Packages are identified by their resolved directory path, so repeated
    requests for the same directory hit the session cache.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        session: Optional[AnalysisSession] = None,
    ):
        """Initialize MCP server.

        Args:
            config: Configuration object. If None, loads from default location.
            session: Analysis session. If None, creates one from config.
        """
        if config is None:
            config = Config()
        self.config = config

        self.session = session if session is not None else AnalysisSession(config=config)

        self.mcp = FastMCP(name=SERVER_NAME)
        self._register_tools()

        logger.info("IncludeTreeMCPServer initialized")

    def _register_tools(self) -> None:
        """Register MCP tools with the server.

        Registers:
        - get_dependency_tree: Build (or fetch cached) include graph for a package
        - invalidate_package: Drop the cached graph after the package changed
        """

        @self.mcp.tool()
        async def get_dependency_tree(
            package_root: str,
            ctx: Context[ServerSession, None],
            entry_path: Optional[str] = None,
        ) -> Dict[str, Any]:
            """Build the include dependency graph of an extracted package.

            Args:
                package_root: Directory holding the extracted package files
                ctx: MCP context for logging
                entry_path: Entry file relative to package_root (default: entry.lua)

            Returns:
                Dictionary with:
                - metadata: entry path, package id and statistics
                - nodes: one entry per inclusion occurrence (id, path, hasData, cycleClosing)
                - links: parent/child node id pairs
                - cycles: detected circular include chains
            """
            await ctx.info(f"Building dependency tree for {package_root}")

            try:
                response = self.get_dependency_tree(package_root, entry_path)
                stats = response["metadata"]["statistics"]
                await ctx.info(
                    f"Tree built: {stats['total_nodes']} nodes, {stats['cycles']} cycles, "
                    f"{stats['missing_files']} missing files"
                )
                return response

            except NotADirectoryError:
                await ctx.error(f"Package root is not a directory: {package_root}")
                raise
            except Exception as e:
                await ctx.error(f"Unexpected error building tree for {package_root}: {e}")
                raise

        @self.mcp.tool()
        async def invalidate_package(
            package_root: str,
            ctx: Context[ServerSession, None],
        ) -> Dict[str, Any]:
            """Discard the cached dependency graph for a package directory.

            Args:
                package_root: Directory previously passed to get_dependency_tree
                ctx: MCP context for logging

            Returns:
                Dictionary with package_id and whether a cached graph was removed.
            """
            result = self.invalidate_package(package_root)
            await ctx.info(f"Invalidated {result['package_id']}: {result['invalidated']}")
            return result

        logger.info("MCP tools registered: get_dependency_tree, invalidate_package")

    def get_dependency_tree(
        self, package_root: str, entry_path: Optional[str] = None
    ) -> Dict[str, Any]:
        """Register the directory on first use (or on entry change) and export its tree.

        Newly registered directories are watched (config.watch_packages) so
        later edits invalidate the cached tree without an explicit
        invalidate_package call.
        """
        package_id = str(Path(package_root).resolve())
        wanted_entry = entry_path or self.config.default_entry_path

        if (
            not self.session.has_package(package_id)
            or self.session.get_package(package_id).entry_path != wanted_entry
        ):
            self.session.register_directory(package_root, package_id, wanted_entry)
            if self.config.watch_packages:
                self._start_watching(package_id)

        return self.session.export_package(package_id)

    def _start_watching(self, package_id: str) -> None:
        try:
            self.session.watch_package(package_id)
        except OSError as e:
            # Trees are still served; they just need explicit invalidation
            logger.warning(f"Could not watch package {package_id}: {e}")

    def invalidate_package(self, package_root: str) -> Dict[str, Any]:
        package_id = str(Path(package_root).resolve())
        return {"package_id": package_id, "invalidated": self.session.invalidate(package_id)}

    def run(self, transport: str = "stdio") -> None:
        """Run the MCP server.

        Args:
            transport: Transport type to use ("stdio", "streamable-http" or "sse").
        """
        logger.info(f"Starting MCP server with {transport} transport")
        self.mcp.run(transport=transport)  # type: ignore[arg-type]

    def shutdown(self) -> None:
        """Shutdown the MCP server and cleanup resources."""
        logger.info("Shutting down MCP server")
        self.session.close()


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="include-tree MCP Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file. Default: ./.include_tree.yml",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for JSON log files and warnings.jsonl. Default: ./.include_tree_logs",
    )
    parser.add_argument(
        "--transport",
        type=str,
        choices=["stdio", "streamable-http", "sse"],
        default="stdio",
        help="Transport type for MCP server. Default: stdio",
    )
    return parser.parse_args()


def main() -> None:
    """Main entry point for MCP server."""
    args = parse_args()

    setup_logging(log_dir=args.log_dir, console_output=True)
    get_warning_logger(args.log_dir)

    server = IncludeTreeMCPServer(config=Config(config_path=args.config))
    logger.info(f"Starting MCP server with session_id={server.session.session_id}")
    try:
        server.run(transport=args.transport)
    finally:
        server.shutdown()


if __name__ == "__main__":
    main()
