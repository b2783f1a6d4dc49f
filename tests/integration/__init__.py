# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Integration tests for include-tree components.

This package contains tests that run the parser, builder, cache and session
together against extracted package directories.
"""
