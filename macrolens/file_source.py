# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains classes and functions for reading C/C++ source text the way the
early stages of a C preprocessor do: removing comments and joining
continued lines into logical lines.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

log = logging.getLogger(__name__)

_NEWLINE = re.compile(r"\r?\n")
_ARG_COMMENT = re.compile(r"/\*.*?\*/|//[^\n]*", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")


class c_cleaner:
    """
    Approximation of the early stages of a C preprocessor.
    Replaces comments with whitespace, one character for one character,
    so that offsets and line numbers in the cleaned text match the
    original text. Newlines inside block comments are kept. String and
    character literals are copied through untouched.
    """

    def __init__(self) -> None:
        self.state = ["TOPLEVEL"]
        self.outbuf: list[str] = []

    def _blank(self, char: str) -> None:
        self.outbuf.append(char if char in "\r\n" else " ")

    def process(self, text: str) -> str:
        """
        Return text with every comment blanked out.
        """
        state = self.state
        obuf = self.outbuf
        pos = 0
        while pos < len(text):
            char = text[pos]
            pos += 1
            if state[-1] == "TOPLEVEL":
                if char == "/":
                    state.append("FOUND_SLASH")
                    continue
                if char == '"':
                    state.append("DOUBLE_QUOTATION")
                elif char == "'":
                    state.append("SINGLE_QUOTATION")
                obuf.append(char)
            elif state[-1] in ("DOUBLE_QUOTATION", "SINGLE_QUOTATION"):
                closing = '"' if state[-1] == "DOUBLE_QUOTATION" else "'"
                if char == "\\":
                    state.append("ESCAPING")
                elif char == closing or char in "\r\n":
                    # An unterminated literal ends at the newline.
                    state.pop()
                obuf.append(char)
            elif state[-1] == "ESCAPING":
                state.pop()
                obuf.append(char)
            elif state[-1] == "FOUND_SLASH":
                state.pop()
                if char == "/":
                    state.append("IN_INLINE_COMMENT")
                    obuf.append("  ")
                elif char == "*":
                    state.append("IN_BLOCK_COMMENT")
                    obuf.append("  ")
                else:
                    obuf.append("/")
                    pos -= 1
            elif state[-1] == "IN_INLINE_COMMENT":
                if char in "\r\n":
                    state.pop()
                self._blank(char)
            elif state[-1] == "IN_BLOCK_COMMENT":
                if char == "*":
                    state.append("IN_BLOCK_COMMENT_FOUND_STAR")
                self._blank(char)
            elif state[-1] == "IN_BLOCK_COMMENT_FOUND_STAR":
                if char == "/":
                    state.pop()
                    if not state[-1] == "IN_BLOCK_COMMENT":
                        raise RuntimeError(
                            "Inconsistent parser state. Looking for '/' to "
                            + "terminate non-existent block comment.",
                        )
                    state.pop()
                elif char != "*":
                    state.pop()
                self._blank(char)
            else:
                raise RuntimeError("Unknown parser state!")

        if state[-1] == "FOUND_SLASH":
            state.pop()
            obuf.append("/")

        return "".join(obuf)


def strip_comments(text: str) -> str:
    """
    Replace every comment in text with whitespace of the same length.
    """
    if "/" not in text:
        return text
    return c_cleaner().process(text)


def strip_inline_comments(text: str) -> str:
    """
    Remove the comments from a fragment (such as a macro argument) and
    collapse its whitespace.
    """
    text = _ARG_COMMENT.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


@dataclass
class LogicalLine:
    """
    A line of source after continuation lines have been joined.

    start_line and end_line are the 1-based numbers of the first and
    last physical lines that make up the logical line.
    """

    text: str
    start_line: int
    end_line: int


def logical_lines(text: str, path: str = "<unknown>") -> Iterator[LogicalLine]:
    """
    Join physical lines ending in a backslash with the line that follows,
    separated by a single space.

    A backslash followed only by whitespace is also treated as a
    continuation, as GCC does, but a warning is logged.
    """
    parts: list[str] = []
    start = 1
    lineno = 0
    for lineno, line in enumerate(_NEWLINE.split(text), start=1):
        if not parts:
            start = lineno

        stripped = line.rstrip()
        if stripped.endswith("\\"):
            if len(stripped) != len(line):
                log.warning(
                    f"{path}:{lineno}: "
                    + "backslash and newline separated by space\n"
                    + f"{lineno:>5} | {line}",
                )
            parts.append(stripped[:-1])
            continue

        parts.append(line)
        yield LogicalLine(" ".join(parts), start, lineno)
        parts = []

    if parts:
        log.warning(f"{path}:{lineno}: backslash-newline at end of file")
        yield LogicalLine(" ".join(parts), start, lineno)


def blank_directives(text: str) -> str:
    """
    Replace every preprocessor directive other than #define (and its
    continuation lines) with whitespace, keeping newlines.
    Used so that #include paths and #if expressions are not mistaken
    for macro uses.
    """
    lines = _NEWLINE.split(text)
    separators = _NEWLINE.findall(text)
    out = []
    blanking = False
    for line in lines:
        if not blanking:
            stripped = line.lstrip()
            blanking = stripped.startswith("#") and not re.match(
                r"#\s*define\b",
                stripped,
            )
        if blanking:
            out.append(" " * len(line))
            blanking = line.rstrip().endswith("\\")
        else:
            out.append(line)

    result = []
    for i, line in enumerate(out):
        result.append(line)
        if i < len(separators):
            result.append(separators[i])
    return "".join(result)
