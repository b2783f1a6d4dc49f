# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Shared fixtures for integration tests."""

from pathlib import Path

import pytest


@pytest.fixture
def sample_package(tmp_path: Path) -> Path:
    """Create a representative extracted package.

    Layout:
    - entry.lua includes the guard, two libraries and a missing file
    - lib/util.lua and lib/draw.lua both include lib/common.lua
    - lib/common.lua includes lib/util.lua back (cycle util -> common)
    - assets/logo.png is included as a non-source asset
    - A commented-out include that must be ignored

    Returns:
        Path to the package root directory
    """
    root = tmp_path / "sample_package"
    (root / "lib").mkdir(parents=True)
    (root / "assets").mkdir()

    (root / "entry.lua").write_text(
        "-- Package entry point\n"
        'include("guard.lua")\n'
        "include 'lib/util.lua'\n"
        "include [[lib/draw.lua]]\n"
        '-- include("old.lua")\n'
        'include("assets/logo.png")\n'
        'include("lib/removed.lua")\n',
        encoding="utf-8",
    )
    (root / "guard.lua").write_text("if not env then return end\n", encoding="utf-8")
    (root / "lib" / "util.lua").write_text(
        'local M = {}\ninclude("lib/common.lua")\nreturn M\n', encoding="utf-8"
    )
    (root / "lib" / "draw.lua").write_text('include("lib/common.lua")\n', encoding="utf-8")
    (root / "lib" / "common.lua").write_text('include("lib/util.lua")\n', encoding="utf-8")
    (root / "assets" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")

    return root
