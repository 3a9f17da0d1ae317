# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains classes and functions for reporting problems with the macros
used and defined in a source file.
"""
from __future__ import annotations

import bisect
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from macrolens import util
from macrolens.config import ExpansionConfig
from macrolens.expander import ExpansionResult, MacroExpander
from macrolens.file_source import blank_directives, strip_comments
from macrolens.parser import parse
from macrolens.store import DefinitionLookup, MacroStore

log = logging.getLogger(__name__)

MAX_FILE_SIZE = 500_000

_DEFINE_LINE = re.compile(r"^[ \t]*#[ \t]*define\b")
_LINE = re.compile(r"[^\n]*\n?")


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


@dataclass(frozen=True)
class Diagnostic:
    """
    A problem found at a position in a file.
    line and column are 1-based; length is the number of characters the
    problem covers.
    """

    path: str
    line: int
    column: int
    length: int
    severity: Severity
    code: str
    message: str

    def __str__(self) -> str:
        return (
            f"{self.path}:{self.line}:{self.column}: "
            + f"{self.severity.value}: {self.message} [{self.code}]"
        )


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _define_ranges(text: str) -> list[tuple[int, int]]:
    """
    Return the (start, end) offsets of every #define, continuation lines
    included.
    """
    ranges = []
    continuing = False
    for match in _LINE.finditer(text):
        line = match.group(0)
        if not line:
            break
        if continuing or _DEFINE_LINE.match(line):
            if ranges and ranges[-1][1] == match.start():
                ranges[-1] = (ranges[-1][0], match.end())
            else:
                ranges.append((match.start(), match.end()))
            continuing = line.rstrip().endswith("\\")
    return ranges


def _adjacent_to_paste(text: str, start: int, end: int) -> bool:
    before = text[:start].rstrip()
    after = text[end:].lstrip()
    return before.endswith("##") or after.startswith("##")


class _FileChecker:
    """
    Checks one file. Offsets refer to the cleaned text, which has the same
    length and line structure as the original.
    """

    def __init__(
        self,
        text: str,
        path: str,
        lookup: DefinitionLookup,
        config: ExpansionConfig,
    ) -> None:
        self.text = text
        self.path = path
        self.lookup = lookup
        self.config = config
        self.expander = MacroExpander(lookup, config)
        self.clean = blank_directives(strip_comments(text))
        self.defines = _define_ranges(self.clean)
        self.literals = util.string_literal_ranges(self.clean)
        self.line_starts = [0] + [
            m.end() for m in re.finditer(r"\n", self.clean)
        ]
        self.results: dict[str, ExpansionResult] = {}
        self.diagnostics: list[Diagnostic] = []

    def report(
        self,
        offset: int,
        length: int,
        severity: Severity,
        code: str,
        message: str,
    ) -> None:
        line = bisect.bisect_right(self.line_starts, offset)
        column = offset - self.line_starts[line - 1] + 1
        self.diagnostics.append(
            Diagnostic(
                self.path,
                line,
                column,
                length,
                severity,
                code,
                message,
            ),
        )

    def is_code(self, offset: int) -> bool:
        """
        Return True if offset is outside #define lines and literals.
        """
        return not (
            util.in_ranges(offset, self.defines)
            or util.in_ranges(offset, self.literals)
        )

    def expand(self, name: str, args: Sequence[str] | None) -> ExpansionResult:
        key = name if args is None else f"{name}({','.join(args)})"
        if key not in self.results:
            self.results[key] = self.expander.expand(name, args)
        return self.results[key]

    def check_expansion(
        self,
        offset: int,
        name: str,
        args: Sequence[str] | None,
    ) -> None:
        result = self.expand(name, args)
        if not result.undefined_macros:
            return
        names = sorted(result.undefined_macros)
        noun = "macro" if len(names) == 1 else "macros"
        self.report(
            offset,
            len(name),
            Severity.WARNING,
            "macro-expansion-undefined",
            f"Macro '{name}' expands to undefined {noun}: {', '.join(names)}",
        )

    def check_argument_counts(self) -> None:
        for match in util.MACRO_CALL_WITH_ARGS.finditer(self.clean):
            name = match.group(1)
            if name in util.BUILTIN_IDENTIFIERS:
                continue
            if not self.is_code(match.start()):
                continue
            records = self.lookup.lookup(name)
            if not records or not records[0].is_macro_definition:
                continue
            record = records[0]
            if not record.parameters or record.is_unbalanced:
                continue

            arguments = util.split_arguments(self.clean, match.end() - 1)
            if arguments is None:
                continue
            args = arguments.args
            if any(util.VA_ARGS in arg for arg in args):
                continue
            if record.accepts(args):
                continue

            if record.is_variadic:
                needed = _plural(len(record.fixed_parameters), "argument")
                message = f"Macro '{name}' requires at least {needed}"
            else:
                needed = _plural(len(record.parameters), "argument")
                message = f"Macro '{name}' requires exactly {needed}"
            message += f", but {len(args)} provided"
            self.report(
                match.start(),
                len(name),
                Severity.ERROR,
                "macro-argument-count",
                message,
            )

    def check_undefined(self) -> None:
        checked = set()
        argument_ranges = []

        for match in util.FUNCTION_LIKE_MACRO_CALL.finditer(self.clean):
            name = match.group(1)
            if name in util.BUILTIN_IDENTIFIERS:
                continue
            if not self.is_code(match.start()):
                continue
            arguments = util.split_arguments(self.clean, match.end() - 1)
            if arguments is not None:
                argument_ranges.append((match.end(), arguments.end_index - 1))
            checked.add(name)

            records = self.lookup.lookup(name)
            if not records:
                self.report(
                    match.start(),
                    len(name),
                    Severity.WARNING,
                    "undefined-macro",
                    f"Undefined macro '{name}'",
                )
                continue
            if not records[0].is_macro_definition or arguments is None:
                continue
            self.check_expansion(match.start(), name, arguments.args)

        # Uses inside the arguments of a call are checked through the
        # expansion of that call.
        argument_ranges.sort()

        for match in util.OBJECT_LIKE_MACRO.finditer(self.clean):
            name = match.group(1)
            start, end = match.span(1)
            if name in util.BUILTIN_IDENTIFIERS or name in checked:
                continue
            if not self.is_code(start):
                continue
            if _adjacent_to_paste(self.clean, start, end):
                continue
            if any(s <= start < e for s, e in argument_ranges):
                continue

            records = self.lookup.lookup(name)
            if not records:
                self.report(
                    start,
                    len(name),
                    Severity.WARNING,
                    "undefined-macro",
                    f"Undefined macro '{name}'",
                )
                continue
            if not records[0].is_macro_definition or records[0].parameters:
                continue
            self.check_expansion(start, name, None)

    def check_redefinitions(self) -> None:
        for match in util.MACRO_NAME.finditer(self.clean):
            name = match.group(0)
            start, end = match.span()
            if name in util.BUILTIN_IDENTIFIERS or not self.is_code(start):
                continue
            if _adjacent_to_paste(self.clean, start, end):
                continue
            records = self.lookup.lookup(name)
            if len(records) < 2 or not records[0].is_macro_definition:
                continue
            locations = ", ".join(
                f"{r.source_file}:{r.source_line}" for r in records
            )
            self.report(
                start,
                len(name),
                Severity.INFORMATION,
                "macro-redefinition",
                f"Macro '{name}' has {len(records)} definitions ({locations})",
            )

    def check_unbalanced(self) -> None:
        lines = self.text.split("\n")
        for record in parse(self.text, self.path, detect_types=False):
            if not record.is_unbalanced:
                continue
            line = lines[record.source_line - 1]
            match = re.search(rf"\b{re.escape(record.name)}\b", line)
            column = match.start() if match else 0
            offset = self.line_starts[record.source_line - 1] + column
            self.report(
                offset,
                len(record.name),
                Severity.WARNING,
                "unbalanced-parentheses",
                f"Macro '{record.name}' has unbalanced parentheses "
                + "in its definition",
            )

    def check(self) -> list[Diagnostic]:
        self.check_argument_counts()
        self.check_undefined()
        self.check_redefinitions()
        self.check_unbalanced()
        self.diagnostics.sort(key=lambda d: (d.line, d.column))
        return self.diagnostics


def check_file(
    text: str,
    path: str,
    lookup: DefinitionLookup,
    config: ExpansionConfig | None = None,
) -> list[Diagnostic]:
    """
    Check the macros used and defined in one file.

    Parameters
    ----------
    text: str
        The contents of the file.

    path: str
        The path reported in every diagnostic.

    lookup: DefinitionLookup
        The definitions of the whole project.

    config: ExpansionConfig, optional
        The configuration used to expand the macros the file uses.

    Returns
    -------
    list[Diagnostic]
        The problems found, ordered by position. Files larger than
        MAX_FILE_SIZE characters are not checked.
    """
    if len(text) > MAX_FILE_SIZE:
        log.info(f"Skipping {path}: larger than {MAX_FILE_SIZE} characters")
        return []

    if isinstance(lookup, MacroStore):
        lookup = lookup.snapshot()
    if config is None:
        config = ExpansionConfig()
    return _FileChecker(text, path, lookup, config).check()
