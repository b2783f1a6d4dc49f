# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Include directive parser for Lua-style package sources.

Extracts the paths named by include calls from one file's text.

Recognized forms (whitespace and newlines tolerated around the parentheses
and the literal):
- include("path.lua")
- include('path.lua')
- include [[path.lua]] / include([==[path.lua]==])
- include "path.lua" (Lua call without parentheses)

Design Decisions:
- Single left-to-right lexical pass. String literals and comments ("--" to
  end of line, "--[[ ... ]]" blocks) are skipped whole, so only names in
  code position can start a directive.
- Exactly one string literal argument; anything else is not a directive.
  Skipping an ambiguous call is preferred over reporting a false include.
- Order and duplicates are preserved; deduplication is left to callers.
- Never raises. Empty, non-string or binary-looking input yields no edges.
"""

import logging
import re
from typing import Iterable, List, Optional, Tuple

from include_tree.models import IncludeEdge

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_LONG_BRACKET_OPEN = re.compile(r"\[(=*)\[")

# Lexemes the scanner stops at: comment start, string openers, words
_TOKEN = re.compile(r"--|[\"'\[]|\w+")


class IncludeDirectiveParser:
    """Parser for include directives.

    Usage:
        parser = IncludeDirectiveParser()
        parser.parse('include("guard.lua")\\ninclude [[helpers.lua]]')
        # -> ["guard.lua", "helpers.lua"]
    """

    DEFAULT_DIRECTIVE_NAMES: Tuple[str, ...] = ("include",)

    # Escapes decoded inside quoted literals; unknown escapes are kept verbatim
    _ESCAPES = {
        "n": "\n",
        "t": "\t",
        "r": "\r",
        "a": "\a",
        "b": "\b",
        "f": "\f",
        "v": "\v",
        "\\": "\\",
        '"': '"',
        "'": "'",
        "\n": "\n",
    }

    def __init__(self, directive_names: Optional[Iterable[str]] = None) -> None:
        """Initialize parser.

        Args:
            directive_names: Function names treated as include calls.
                Defaults to ("include",).

        Raises:
            ValueError: If a directive name is not a valid identifier.
        """
        names = tuple(directive_names) if directive_names else self.DEFAULT_DIRECTIVE_NAMES
        for name in names:
            if not isinstance(name, str) or not _IDENTIFIER.fullmatch(name):
                raise ValueError(f"Directive name must be an identifier, got {name!r}")
        self.directive_names = names
        self._names = frozenset(names)

    def parse(self, text: object) -> List[str]:
        """Return included paths in textual order.

        Args:
            text: Source text of one file.

        Returns:
            List of paths, duplicates preserved. Empty list if none found.
        """
        return [edge.to_path for edge in self.parse_edges("", text)]

    def parse_edges(self, from_path: str, text: object) -> List[IncludeEdge]:
        """Return include edges with line numbers in textual order.

        Args:
            from_path: Path of the file being parsed (recorded on each edge).
            text: Source text of that file.

        Returns:
            List of IncludeEdge objects. Empty list if none found.
        """
        if not isinstance(text, str) or not text:
            return []
        if "\x00" in text:
            logger.debug(f"Skipping binary-looking content in {from_path or '<text>'}")
            return []

        edges: List[IncludeEdge] = []
        line_number = 1
        line_counted_to = 0
        pos = 0

        while True:
            token = _TOKEN.search(text, pos)
            if token is None:
                break
            start = token.start()
            lexeme = token.group()

            if lexeme == "--":
                pos = self._skip_comment(text, start)
            elif lexeme == '"' or lexeme == "'":
                literal = self._read_quoted(text, start, lexeme)
                # Unterminated strings end at the line break
                pos = literal[1] if literal is not None else self._line_end(text, start)
            elif lexeme == "[":
                literal = self._read_long_bracket(text, start)
                pos = literal[1] if literal is not None else start + 1
            else:
                pos = token.end()
                if not self._is_candidate(text, start, lexeme):
                    continue
                call = self._match_call(text, pos)
                if call is None:
                    continue

                path, pos = call
                line_number += text.count("\n", line_counted_to, start)
                line_counted_to = start
                edges.append(
                    IncludeEdge(from_path=from_path, to_path=path, line_number=line_number)
                )

        return edges

    def _is_candidate(self, text: str, start: int, word: str) -> bool:
        """A directive name in call position, not a field (a.include) or method (a:include)."""
        if word not in self._names:
            return False
        if start == 0:
            return True
        previous = text[start - 1]
        if previous == ":":
            return False
        # ".." is concatenation, a single "." is field access
        return previous != "." or (start >= 2 and text[start - 2] == ".")

    def _skip_comment(self, text: str, pos: int) -> int:
        """Offset just past the comment starting at pos ("--")."""
        opening = _LONG_BRACKET_OPEN.match(text, pos + 2)
        if opening is None:
            return self._line_end(text, pos)
        closing = "]" + opening.group(1) + "]"
        end = text.find(closing, opening.end())
        # An unclosed block comment runs to the end of the file
        return len(text) if end == -1 else end + len(closing)

    @staticmethod
    def _line_end(text: str, pos: int) -> int:
        end = text.find("\n", pos)
        return len(text) if end == -1 else end

    def _match_call(self, text: str, pos: int) -> Optional[Tuple[str, int]]:
        """Match the argument part of a call starting right after the name.

        Returns:
            (path, end_offset) if a single non-empty literal argument was found.
        """
        pos = self._skip_whitespace(text, pos)
        has_paren = pos < len(text) and text[pos] == "("
        if has_paren:
            pos = self._skip_whitespace(text, pos + 1)

        literal = self._read_literal(text, pos)
        if literal is None:
            return None
        value, pos = literal

        if has_paren:
            pos = self._skip_whitespace(text, pos)
            if pos >= len(text) or text[pos] != ")":
                # Extra arguments or unterminated call
                return None
            pos += 1

        if not value:
            return None
        return value, pos

    @staticmethod
    def _skip_whitespace(text: str, pos: int) -> int:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        return pos

    def _read_literal(self, text: str, pos: int) -> Optional[Tuple[str, int]]:
        if pos >= len(text):
            return None
        ch = text[pos]
        if ch == '"' or ch == "'":
            return self._read_quoted(text, pos, ch)
        if ch == "[":
            return self._read_long_bracket(text, pos)
        return None

    def _read_quoted(self, text: str, pos: int, quote: str) -> Optional[Tuple[str, int]]:
        """Read a quoted literal starting at the opening quote."""
        chars: List[str] = []
        i = pos + 1
        while i < len(text):
            ch = text[i]
            if ch == quote:
                return "".join(chars), i + 1
            if ch == "\n":
                # Unterminated string
                return None
            if ch == "\\":
                if i + 1 >= len(text):
                    return None
                nxt = text[i + 1]
                chars.append(self._ESCAPES.get(nxt, "\\" + nxt))
                i += 2
                continue
            chars.append(ch)
            i += 1
        return None

    @staticmethod
    def _read_long_bracket(text: str, pos: int) -> Optional[Tuple[str, int]]:
        """Read a [[...]] or [==[...]==] literal; contents are raw."""
        opening = _LONG_BRACKET_OPEN.match(text, pos)
        if opening is None:
            return None
        closing = "]" + opening.group(1) + "]"
        end = text.find(closing, opening.end())
        if end == -1:
            return None

        content = text[opening.end() : end]
        # Lua drops a newline immediately following the opening bracket
        if content.startswith("\r\n"):
            content = content[2:]
        elif content.startswith("\n"):
            content = content[1:]
        return content, end + len(closing)
