# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests: AnalysisSession over an extracted package directory.

Validates:
- Directory provider, parser and builder agree on the tree
- Cycles are reported once even when reached through two parents
- Cache invalidation picks up edits to the package
- Export output written to disk
"""

import json
from pathlib import Path

from include_tree.config import Config
from include_tree.export import write_graph_json
from include_tree.session import AnalysisSession


class TestSessionDirectory:
    """End-to-end analysis of sample_package."""

    def test_full_tree(self, sample_package: Path) -> None:
        with AnalysisSession(config=Config.from_dict({})) as session:
            package_id = session.register_directory(str(sample_package))
            tree = session.get_tree(package_id)

        assert [n.path for n in tree.root.children] == [
            "guard.lua",
            "lib/util.lua",
            "lib/draw.lua",
            "assets/logo.png",
            "lib/removed.lua",
        ]
        assert tree.node_count == 11
        assert tree.cycles == (("lib/util.lua", "lib/common.lua"),)
        assert tree.missing_paths() == ["lib/removed.lua"]
        assert tree.find_nodes("old.lua") == []
        assert len(tree.find_nodes("lib/common.lua")) == 3
        assert tree.max_depth == 4

        logo = tree.find_nodes("assets/logo.png")[0]
        assert logo.has_data and logo.is_leaf

    def test_edit_then_reanalyze(self, sample_package: Path) -> None:
        with AnalysisSession(config=Config.from_dict({})) as session:
            package_id = session.register_directory(str(sample_package))
            before = session.get_tree(package_id)

            (sample_package / "lib" / "common.lua").write_text("return {}\n", encoding="utf-8")
            # Cached tree still served until the package is re-analyzed
            assert session.get_tree(package_id) is before

            after = session.reanalyze(package_id)

        assert before.has_cycles
        assert not after.has_cycles
        assert after.node_count == 8

    def test_watcher_callback_invalidates(self, sample_package: Path) -> None:
        with AnalysisSession(config=Config.from_dict({})) as session:
            package_id = session.register_directory(str(sample_package))
            watcher = session.watch_package(package_id)
            before = session.get_tree(package_id)

            (sample_package / "lib" / "removed.lua").write_text("", encoding="utf-8")
            watcher.notify_change(str(sample_package / "lib" / "removed.lua"))
            after = session.get_tree(package_id)

        assert before.missing_paths() == ["lib/removed.lua"]
        assert after.missing_paths() == []

    def test_export_to_disk(self, sample_package: Path, tmp_path: Path) -> None:
        with AnalysisSession(config=Config.from_dict({})) as session:
            package_id = session.register_directory(str(sample_package))
            output = write_graph_json(session.get_tree(package_id), tmp_path / "graph.json")

        data = json.loads(output.read_text(encoding="utf-8"))
        assert len(data["nodes"]) == 11
        assert len(data["links"]) == 10
        assert data["cycles"] == [["lib/util.lua", "lib/common.lua"]]
