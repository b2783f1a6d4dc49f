# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Graph export for dependency trees.

Flattens a DependencyTree into a node/link structure suitable for graph
visualization and JSON serialization.

Export format:
- metadata: timestamp, version, entry path, statistics
- nodes: one entry per occurrence with id, path, hasData, cycleClosing, depth
- links: {source, target} pairs referencing node ids
- cycles: detected include cycles as path lists
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from include_tree.models import DependencyTree

logger = logging.getLogger(__name__)

# Type alias for graph export format
GraphExport = Dict[str, Any]

EXPORT_FORMAT_VERSION = "1.0"


def export_graph(tree: DependencyTree) -> GraphExport:
    """Export a tree to a JSON-compatible node/link dict.

    Node ids are the tree's pre-order node ids, so links reference node
    identity unambiguously even when one path occurs several times.

    Args:
        tree: Finished dependency tree.

    Returns:
        Dictionary with metadata, nodes, links and cycles.
    """
    nodes: List[Dict[str, Any]] = []
    for node in tree.iter_nodes():
        node_entry: Dict[str, Any] = {
            "id": node.node_id,
            "path": node.path,
            "hasData": node.has_data,
            "cycleClosing": node.cycle_closing,
            "depth": node.depth,
        }
        if node.error is not None:
            node_entry["error"] = node.error
        nodes.append(node_entry)

    links = [
        {"source": parent.node_id, "target": child.node_id}
        for parent, child in tree.iter_edges()
    ]

    metadata: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": EXPORT_FORMAT_VERSION,
        "entry_path": tree.entry_path,
        "statistics": tree.get_statistics(),
    }

    return {
        "metadata": metadata,
        "nodes": nodes,
        "links": links,
        "cycles": [list(cycle) for cycle in tree.cycles],
    }


def write_graph_json(tree: DependencyTree, output_path: Path, indent: int = 2) -> Path:
    """Write the graph export of a tree to a JSON file.

    Args:
        tree: Finished dependency tree.
        output_path: Destination file. Parent directories are created.
        indent: JSON indentation.

    Returns:
        The path written.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(export_graph(tree), f, indent=indent)
        f.write("\n")

    logger.info(f"Dependency graph for {tree.entry_path} written to {output_path}")
    return output_path


def format_cycles(tree: DependencyTree) -> List[str]:
    """Human-readable cycle chains, e.g. "a.lua -> b.lua -> a.lua"."""
    return [" -> ".join(cycle + cycle[:1]) for cycle in tree.cycles]
