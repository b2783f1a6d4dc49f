# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Unit tests for IncludeDirectiveParser.

Tests coverage:
- Literal forms: double-quoted, single-quoted, long-bracket
- Textual ordering and duplicate preservation
- Comment suppression
- Malformed and ambiguous calls are skipped
- Robustness against empty, binary and non-string input
"""

import pytest

from include_tree.models import IncludeEdge
from include_tree.parser import IncludeDirectiveParser


@pytest.fixture
def parser() -> IncludeDirectiveParser:
    return IncludeDirectiveParser()


class TestLiteralForms:
    """Each supported literal form extracts the same path."""

    @pytest.mark.parametrize(
        "source",
        [
            'include("a.lua")',
            "include('a.lua')",
            "include [[a.lua]]",
            "include([[a.lua]])",
            'include "a.lua"',
            "include'a.lua'",
            "include[==[a.lua]==]",
            'include ( "a.lua" )',
            'include\n(\n  "a.lua"\n)',
        ],
    )
    def test_extracts_path(self, parser: IncludeDirectiveParser, source: str) -> None:
        assert parser.parse(source) == ["a.lua"]

    def test_long_bracket_is_raw(self, parser: IncludeDirectiveParser) -> None:
        """No escape processing inside brackets."""
        assert parser.parse(r"include [[dir\name.lua]]") == [r"dir\name.lua"]

    def test_long_bracket_drops_leading_newline(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse("include [[\nlib/util.lua]]") == ["lib/util.lua"]

    def test_long_bracket_with_level_contains_brackets(
        self, parser: IncludeDirectiveParser
    ) -> None:
        assert parser.parse("include [=[odd]]name.lua]=]") == ["odd]]name.lua"]

    def test_quoted_escapes_decoded(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse(r'include("it\"s.lua")') == ['it"s.lua']
        assert parser.parse(r"include('dir\\x.lua')") == ["dir\\x.lua"]

    def test_paths_with_directories(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse('include("lib/sub/helpers.lua")') == ["lib/sub/helpers.lua"]


class TestOrdering:
    """Edges follow left-to-right, top-to-bottom order."""

    def test_empty_text_has_no_edges(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse("") == []

    def test_text_without_directives(self, parser: IncludeDirectiveParser) -> None:
        source = 'local x = 1\nprint("include me")\nreturn x\n'
        assert parser.parse(source) == []

    def test_top_to_bottom(self, parser: IncludeDirectiveParser) -> None:
        source = 'include("first.lua")\nlocal y = 2\ninclude("second.lua")\n'
        assert parser.parse(source) == ["first.lua", "second.lua"]

    def test_left_to_right_on_one_line(self, parser: IncludeDirectiveParser) -> None:
        source = "include('b.lua') include [[a.lua]]; include \"c.lua\""
        assert parser.parse(source) == ["b.lua", "a.lua", "c.lua"]

    def test_duplicates_preserved(self, parser: IncludeDirectiveParser) -> None:
        source = 'include("a.lua")\ninclude("a.lua")\n'
        assert parser.parse(source) == ["a.lua", "a.lua"]

    def test_parse_edges_records_line_numbers(self, parser: IncludeDirectiveParser) -> None:
        source = '-- header\ninclude("a.lua")\n\n\ninclude [[\nb.lua]]\ninclude("c.lua")\n'
        edges = parser.parse_edges("entry.lua", source)
        assert edges == [
            IncludeEdge("entry.lua", "a.lua", 2),
            IncludeEdge("entry.lua", "b.lua", 5),
            IncludeEdge("entry.lua", "c.lua", 7),
        ]


class TestComments:
    """Single-line comments suppress directives."""

    def test_commented_directive(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse('-- include("a.lua")') == []

    def test_trailing_comment_after_code(self, parser: IncludeDirectiveParser) -> None:
        source = 'local x = 1 -- include("a.lua")\ninclude("b.lua")'
        assert parser.parse(source) == ["b.lua"]

    def test_directive_before_comment_is_kept(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse('include("a.lua") -- load helpers') == ["a.lua"]

    def test_single_line_block_comment(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse('--[[ include("a.lua") ]]') == []

    def test_multiline_block_comment(self, parser: IncludeDirectiveParser) -> None:
        source = '--[[\ninclude("a.lua")\n]]\ninclude("b.lua")'
        assert parser.parse(source) == ["b.lua"]

    def test_leveled_block_comment(self, parser: IncludeDirectiveParser) -> None:
        source = '--[==[\nx = t[[1]]\ninclude("a.lua")\n]==] include("b.lua")'
        assert parser.parse(source) == ["b.lua"]

    def test_unclosed_block_comment_runs_to_end(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse('--[[\ninclude("a.lua")\n') == []

    def test_dashes_inside_string_are_not_a_comment(
        self, parser: IncludeDirectiveParser
    ) -> None:
        assert parser.parse('local sep = "--"; include("a.lua")') == ["a.lua"]
        assert parser.parse("local sep = [[--]] include 'b.lua'") == ["b.lua"]

    def test_code_after_block_comment_on_same_line(
        self, parser: IncludeDirectiveParser
    ) -> None:
        assert parser.parse('--[[ disabled ]] include("a.lua")') == ["a.lua"]


class TestMalformedInput:
    """Calls that cannot be matched confidently yield no edge."""

    @pytest.mark.parametrize(
        "source",
        [
            "include(path)",
            'include("a.lua", true)',
            'include("a.lua"',
            'include("a.lua',
            "include [[a.lua",
            "include()",
            'include("")',
            "include",
            'include(\n"a\nb.lua")',
        ],
    )
    def test_no_edge(self, parser: IncludeDirectiveParser, source: str) -> None:
        assert parser.parse(source) == []

    @pytest.mark.parametrize(
        "source",
        [
            'myinclude("a.lua")',
            'include_all("a.lua")',
            'obj.include("a.lua")',
            'obj:include("a.lua")',
        ],
    )
    def test_other_identifiers_are_not_directives(
        self, parser: IncludeDirectiveParser, source: str
    ) -> None:
        assert parser.parse(source) == []

    def test_malformed_call_does_not_hide_next_directive(
        self, parser: IncludeDirectiveParser
    ) -> None:
        source = 'include(name)\ninclude("b.lua")'
        assert parser.parse(source) == ["b.lua"]

    def test_directive_text_inside_literal_not_rescanned(
        self, parser: IncludeDirectiveParser
    ) -> None:
        source = "include [[include('inner.lua')]]"
        assert parser.parse(source) == ["include('inner.lua')"]

    @pytest.mark.parametrize(
        "source",
        [
            "print(\"include('a.lua')\")",
            "local msg = 'call include(\"a.lua\") first'",
            'local doc = [[\ninclude("a.lua")\n]]',
            'local doc = [==[ include [[a.lua]] ]==]',
            'error("missing include") -- include("a.lua")',
        ],
    )
    def test_directive_inside_string_literal(
        self, parser: IncludeDirectiveParser, source: str
    ) -> None:
        assert parser.parse(source) == []

    def test_string_literal_then_directive(self, parser: IncludeDirectiveParser) -> None:
        source = 'log("include(\\"x.lua\\")")\ninclude("real.lua")'
        edges = parser.parse_edges("entry.lua", source)
        assert [(e.to_path, e.line_number) for e in edges] == [("real.lua", 2)]

    def test_unterminated_string_ends_at_line(self, parser: IncludeDirectiveParser) -> None:
        source = 'local s = "broken\ninclude("a.lua")'
        assert parser.parse(source) == ["a.lua"]

    def test_directive_after_concatenation(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse('x = y..include("a.lua")') == ["a.lua"]

    def test_binary_content(self, parser: IncludeDirectiveParser) -> None:
        assert parser.parse('\x89PNG\x00\x00include("a.lua")') == []

    @pytest.mark.parametrize("value", [None, 42, b'include("a.lua")'])
    def test_non_string_input(self, parser: IncludeDirectiveParser, value: object) -> None:
        assert parser.parse(value) == []


class TestDirectiveNames:
    """Configurable directive names."""

    def test_custom_names(self) -> None:
        parser = IncludeDirectiveParser(["dofile", "include"])
        source = 'dofile("a.lua")\ninclude("b.lua")\nrequire("c")'
        assert parser.parse(source) == ["a.lua", "b.lua"]

    def test_longer_name_not_shadowed(self) -> None:
        parser = IncludeDirectiveParser(["include", "include_once"])
        assert parser.parse('include_once("a.lua")') == ["a.lua"]

    def test_invalid_name_rejected(self) -> None:
        with pytest.raises(ValueError):
            IncludeDirectiveParser(["not a name"])
