# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains text utilities shared by the parser, the expander and the
presentation layers:
- The regular expression table and the built-in identifier set
- String literal detection and parenthesis nesting
- Argument splitting and macro invocation lookup
- Parenthesis stripping for presentation
"""
from __future__ import annotations

import bisect
import re
from typing import NamedTuple

# Identifiers that look like macros (uppercase with underscores).
MACRO_NAME = re.compile(r"\b[A-Z_][A-Z0-9_]*\b")
MACRO_NAME_EXACT = re.compile(r"[A-Z_][A-Z0-9_]*")

# Any identifier followed by an optional call parenthesis.
MACRO_WITH_CALL = re.compile(r"\b([A-Za-z_]\w*)\s*(\()?")

# Any identifier immediately followed by an argument list.
MACRO_CALL_WITH_ARGS = re.compile(r"\b([A-Za-z_]\w*)\s*\(")

# Any identifier that is not followed by an argument list.
MACRO_WITHOUT_ARGS = re.compile(r"\b([A-Za-z_]\w*)\b(?!\s*\()")

# Uppercase call sites and uses, as scanned by diagnostics.
FUNCTION_LIKE_MACRO_CALL = re.compile(r"\b([A-Z_][A-Z0-9_]*)\s*\(")
OBJECT_LIKE_MACRO = re.compile(r"\b([A-Z_][A-Z0-9_]+)\b(?!\s*\()")

DEFINE_DIRECTIVE = re.compile(r"^\s*#\s*define\s+([A-Za-z_]\w*)(.*)$")
TYPEDEF_DIRECTIVE = re.compile(r"^\s*typedef\s+")
STRUCT_DECLARATION = re.compile(r"^\s*struct\s+([A-Z_][A-Z0-9_]*)\b")
UNION_DECLARATION = re.compile(r"^\s*union\s+([A-Z_][A-Z0-9_]*)\b")
ENUM_DECLARATION = re.compile(r"^\s*enum\s+([A-Z_][A-Z0-9_]*)\b")
ANONYMOUS_ENUM_DECLARATION = re.compile(r"^\s*enum\s*\{")

VA_ARGS = "__VA_ARGS__"

CPP_FILE_EXTENSION = re.compile(r"\.(c|cpp|cc|h|hpp|hh)$", re.IGNORECASE)

# Defined by the C/C++ standards or by common compilers.
BUILTIN_IDENTIFIERS = frozenset(
    [
        "__VA_ARGS__",
        "__VA_OPT__",
        "__FILE__",
        "__LINE__",
        "__DATE__",
        "__TIME__",
        "__TIMESTAMP__",
        "__STDC__",
        "__STDC_VERSION__",
        "__STDC_HOSTED__",
        "__cplusplus",
        "__func__",
        "__FUNCTION__",
        "__PRETTY_FUNCTION__",
        "__GNUC__",
        "__GNUC_MINOR__",
        "__GNUC_PATCHLEVEL__",
        "__clang__",
        "__clang_major__",
        "__clang_minor__",
        "__clang_patchlevel__",
        "_MSC_VER",
        "_MSC_FULL_VER",
        "__APPLE__",
        "__linux__",
        "__unix__",
        "__MINGW32__",
        "__MINGW64__",
        "_WIN32",
        "_WIN64",
        "__x86_64__",
        "__i386__",
        "__arm__",
        "__aarch64__",
        "__attribute__",
        "__declspec",
    ],
)


class ArgumentList(NamedTuple):
    """
    The arguments of a parenthesized argument list.

    end_index is the offset just past the closing parenthesis, and spans
    holds the (start, end) offsets of each trimmed argument.
    """

    args: list[str]
    end_index: int
    spans: list[tuple[int, int]]


class MacroCall(NamedTuple):
    """
    A macro name and, for a call, its arguments.
    """

    name: str
    args: list[str] | None


class Invocation(NamedTuple):
    """
    A candidate macro invocation found in a piece of text.
    """

    name: str
    args: list[str] | None
    start: int
    end: int
    depth: int
    arg_spans: list[tuple[int, int]]

    def spelling(self) -> str:
        if self.args is None:
            return self.name
        return f"{self.name}({', '.join(self.args)})"


def is_macro_name(token: str) -> bool:
    """
    Return True if token looks like a macro name.
    """
    return MACRO_NAME_EXACT.fullmatch(token) is not None


def literal_end(text: str, start: int) -> int:
    """
    Return the offset just past the string or character literal that
    opens at start. An unterminated literal ends at the next newline.
    """
    quote = text[start]
    pos = start + 1
    while pos < len(text):
        char = text[pos]
        if char == "\\":
            pos += 2
            continue
        if char == quote:
            return pos + 1
        if char in "\r\n":
            return pos
        pos += 1
    return len(text)


def string_literal_ranges(text: str) -> list[tuple[int, int]]:
    """
    Returns
    -------
    list[tuple[int, int]]
        The (start, end) offsets of every string and character literal
        in text, in order, quotes included.
    """
    ranges = []
    pos = 0
    while pos < len(text):
        if text[pos] in "\"'":
            end = literal_end(text, pos)
            ranges.append((pos, end))
            pos = end
        else:
            pos += 1
    return ranges


def in_ranges(index: int, ranges: list[tuple[int, int]]) -> bool:
    """
    Return True if index falls inside one of the sorted ranges.
    """
    i = bisect.bisect_right(ranges, (index, float("inf")))
    if i == 0:
        return False
    start, end = ranges[i - 1]
    return start <= index < end


def depth_map(text: str) -> list[int]:
    """
    Return the parenthesis nesting depth in front of every offset of
    text (plus one entry for the end of the text). Parentheses inside
    literals are ignored and depth never drops below zero.
    """
    depths = []
    depth = 0
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char in "\"'":
            end = literal_end(text, pos)
            depths.extend([depth] * (end - pos))
            pos = end
            continue
        depths.append(depth)
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(0, depth - 1)
        pos += 1
    depths.append(depth)
    return depths


def nesting_depth(text: str) -> int:
    """
    Return the number of parentheses left open at the end of text.
    """
    return depth_map(text)[-1]


def is_balanced(text: str) -> bool:
    """
    Return True if every parenthesis in text (outside literals) is
    matched, and no closing parenthesis comes before its opener.
    """
    depth = 0
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char in "\"'":
            pos = literal_end(text, pos)
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return False
        pos += 1
    return depth == 0


def matching_paren(text: str, index: int) -> int | None:
    """
    Return the offset of the parenthesis closing the one at index, or
    None if the input runs out first.
    """
    depth = 0
    pos = index
    while pos < len(text):
        char = text[pos]
        if char in "\"'":
            pos = literal_end(text, pos)
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return pos
        pos += 1
    return None


def is_fully_wrapped(text: str) -> bool:
    """
    Return True if text is a single parenthesized group, such as
    "(a + b)" but not "(a) + (b)".
    """
    text = text.strip()
    if not text.startswith("(") or not text.endswith(")"):
        return False
    return matching_paren(text, 0) == len(text) - 1


def _append_argument(
    text: str,
    start: int,
    end: int,
    args: list[str],
    spans: list[tuple[int, int]],
) -> None:
    raw = text[start:end]
    arg = raw.strip()
    lead = len(raw) - len(raw.lstrip())
    args.append(arg)
    spans.append((start + lead, start + lead + len(arg)))


def split_arguments(text: str, index: int) -> ArgumentList | None:
    """
    Split the argument list whose opening parenthesis is at index.

    Commas only separate arguments at the top level of the list, and
    parentheses or commas inside string and character literals are
    ignored. An empty list, "()", has no arguments.

    Returns
    -------
    ArgumentList | None
        The trimmed arguments, or None if there is no '(' at index or
        the list is never closed.
    """
    if index >= len(text) or text[index] != "(":
        return None

    args: list[str] = []
    spans: list[tuple[int, int]] = []
    depth = 0
    start = index + 1
    pos = index + 1
    while pos < len(text):
        char = text[pos]
        if char in "\"'":
            pos = literal_end(text, pos)
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            if depth == 0:
                if args or text[start:pos].strip():
                    _append_argument(text, start, pos, args, spans)
                return ArgumentList(args, pos + 1, spans)
            depth -= 1
        elif char == "," and depth == 0:
            _append_argument(text, start, pos, args, spans)
            start = pos + 1
        pos += 1

    return None


def find_invocations(text: str) -> list[Invocation]:
    """
    Find every identifier in text that could be a macro invocation,
    with its arguments (for calls) and its parenthesis nesting depth.
    Identifiers inside literals and calls with unterminated argument
    lists are skipped.
    """
    literals = string_literal_ranges(text)
    depths = depth_map(text)
    found = []

    for match in MACRO_CALL_WITH_ARGS.finditer(text):
        start = match.start()
        if in_ranges(start, literals):
            continue
        arguments = split_arguments(text, match.end() - 1)
        if arguments is None:
            continue
        found.append(
            Invocation(
                match.group(1),
                arguments.args,
                start,
                arguments.end_index,
                depths[start],
                arguments.spans,
            ),
        )

    for match in MACRO_WITHOUT_ARGS.finditer(text):
        start = match.start()
        if in_ranges(start, literals):
            continue
        found.append(
            Invocation(
                match.group(1),
                None,
                start,
                match.end(),
                depths[start],
                [],
            ),
        )

    found.sort(key=lambda inv: inv.start)
    return found


def find_macro_at_position(text: str, offset: int) -> MacroCall | None:
    """
    Return the macro name (and arguments, for a call) covering offset
    in text, or None. Calls whose argument list cannot be split are
    skipped, so a half-typed call never matches.
    """
    for match in MACRO_WITH_CALL.finditer(text):
        name = match.group(1)
        start = match.start()

        if match.group(2) is None:
            if start <= offset <= start + len(name):
                return MacroCall(name, None)
            continue

        arguments = split_arguments(text, match.end() - 1)
        if arguments is None:
            continue
        if start <= offset <= arguments.end_index:
            return MacroCall(name, arguments.args)

    return None


def _strip_groups(text: str) -> str:
    if "(" not in text:
        return text

    out = []
    pos = 0
    while pos < len(text):
        char = text[pos]
        if char in "\"'":
            end = literal_end(text, pos)
            out.append(text[pos:end])
            pos = end
            continue
        if char != "(":
            out.append(char)
            pos += 1
            continue

        close = matching_paren(text, pos)
        if close is None:
            # Never normalize a group that does not close.
            out.append(text[pos:])
            break

        inner = text[pos + 1 : close]
        if not inner.strip():
            out.append(text[pos : close + 1])
        else:
            stripped = _strip_groups(inner)
            if is_fully_wrapped(stripped):
                # Whitespace between two layers goes with the outer one.
                out.append(stripped.strip())
            else:
                out.append(f"({stripped})")
        pos = close + 1

    return "".join(out)


def strip_parentheses(text: str) -> str:
    """
    Remove redundant layers of parentheses, keeping exactly one layer
    around every parenthesized group: "(((a)))" becomes "(a)" and
    "((a + b)) * ((c))" becomes "(a + b) * (c)".

    Text whose parentheses are not balanced is returned unchanged.
    """
    if not is_balanced(text):
        return text
    return _strip_groups(text.strip())
