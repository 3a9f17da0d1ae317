# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains classes and functions for extracting macro definitions and type
declarations from C/C++ source text.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from macrolens import util
from macrolens.file_source import LogicalLine, logical_lines, strip_comments

log = logging.getLogger(__name__)

UNBALANCED_MARKER = "/*UNBALANCED*/ "

_BLANKS = re.compile(r"[ \t]+")
_WHITESPACE = re.compile(r"\s+")
_BRACED = re.compile(r"\{[^{}]*\}|\[[^\[\]]*\]")
_TYPEDEF_KEYWORDS = frozenset(["STRUCT", "UNION", "ENUM"])


@dataclass(frozen=True)
class MacroRecord:
    """
    One definition of a name: a #define, or a type declaration that is
    recorded only so that its name is not reported as undefined.

    parameters is None for object-like macros and a (possibly empty)
    tuple for function-like macros.
    """

    name: str
    parameters: tuple[str, ...] | None
    body: str
    source_file: str
    source_line: int
    is_macro_definition: bool = True

    @property
    def is_function_like(self) -> bool:
        return self.parameters is not None

    @property
    def is_variadic(self) -> bool:
        return bool(self.parameters) and self.parameters[-1].endswith("...")

    @property
    def fixed_parameters(self) -> tuple[str, ...]:
        """
        The parameters that must always be supplied.
        """
        if not self.parameters:
            return ()
        if self.is_variadic:
            return self.parameters[:-1]
        return self.parameters

    @property
    def variadic_name(self) -> str | None:
        """
        The name used for the variadic arguments in the body:
        __VA_ARGS__ for "...", or "args" for the GNU "args..." form.
        """
        if not self.is_variadic:
            return None
        name = self.parameters[-1][:-3].strip()
        return name if name else util.VA_ARGS

    @property
    def is_unbalanced(self) -> bool:
        return self.body.startswith(UNBALANCED_MARKER)

    @property
    def display_body(self) -> str:
        if self.is_unbalanced:
            return self.body[len(UNBALANCED_MARKER) :]
        return self.body

    def accepts(self, args: Sequence[str] | None) -> bool:
        """
        Return True if a call site with these arguments can be expanded
        with this definition. Object-like macros cannot be called, and
        function-like macros must be called with the right number of
        arguments.
        """
        if not self.is_function_like:
            return args is None
        if args is None:
            return False
        if self.is_variadic:
            return len(args) >= len(self.fixed_parameters)
        if len(args) == len(self.parameters):
            return True
        # "FOO()" passes one empty argument to a one-parameter macro.
        return len(self.parameters) == 1 and len(args) == 0

    def spelling(self) -> str:
        if not self.is_macro_definition:
            return self.body
        if self.parameters is None:
            head = self.name
        else:
            head = f"{self.name}({', '.join(self.parameters)})"
        body = self.display_body
        return f"#define {head} {body}".rstrip()


def _normalize(text: str) -> str:
    return _BLANKS.sub(" ", text).strip()


def _parameter_list_end(text: str) -> int | None:
    depth = 0
    for pos, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return pos
    return None


def _parse_define(
    name: str,
    rest: str,
    path: str,
    line: int,
) -> MacroRecord:
    """
    Decompose the text that follows the macro name of a #define.

    Only a '(' immediately after the name (no whitespace) starts a
    parameter list; "#define FOO (x)" is an object-like macro.
    """
    parameters: tuple[str, ...] | None = None
    balanced = True

    if rest.startswith("("):
        close = _parameter_list_end(rest)
        if close is None:
            balanced = False
            body = rest
        else:
            parameters = tuple(
                p.strip() for p in rest[1:close].split(",") if p.strip()
            )
            body = rest[close + 1 :]
    else:
        body = rest

    body = _WHITESPACE.sub(" ", body).strip()
    if balanced and not util.is_balanced(body):
        balanced = False

    if not balanced:
        log.debug(f"{path}:{line}: unbalanced definition of {name}")
        body = UNBALANCED_MARKER + body

    return MacroRecord(name, parameters, body, path, line)


def _type_record(name: str, kind: str, path: str, line: int) -> MacroRecord:
    return MacroRecord(name, None, f"/* {kind} */", path, line, False)


def _typedef_names(text: str) -> list[str]:
    """
    Return the uppercase names declared by a typedef, in order.
    Member declarations and array sizes are not names of the typedef.
    """
    after = text[text.index("typedef") + len("typedef") :]
    previous = None
    while previous != after:
        previous = after
        after = _BRACED.sub(" ", after)

    names = []
    for match in util.MACRO_NAME.finditer(after):
        name = match.group(0)
        if name not in _TYPEDEF_KEYWORDS and name not in names:
            names.append(name)
    return names


def _enum_constants(text: str) -> list[str]:
    start = text.find("{")
    end = text.find("}")
    if start == -1 or end == -1:
        return []

    constants = []
    for part in text[start + 1 : end].split(","):
        candidate = part.split("=", 1)[0].strip()
        if util.is_macro_name(candidate):
            constants.append(candidate)
    return constants


class _LineReader:
    """
    Iterates over normalized logical lines. A declaration that spans
    several lines pulls lines until it is complete, and can put back a
    line that turns out to start something else.
    """

    def __init__(self, lines: Iterator[LogicalLine]) -> None:
        self.lines = lines
        self.single: tuple[str, int] | None = None

    def __iter__(self) -> _LineReader:
        return self

    def __next__(self) -> tuple[str, int]:
        if self.single is not None:
            item = self.single
            self.single = None
            return item
        logical = next(self.lines)
        return _normalize(logical.text), logical.start_line

    def putback(self, item: tuple[str, int]) -> None:
        if self.single is not None:
            raise RuntimeError(
                "_LineReader can only have one item put back at a time!",
            )
        self.single = item

    def continuation(self) -> str | None:
        """
        Return the next line of a declaration, or None at the end of
        the input or when the next line is a directive.
        """
        try:
            item = next(self)
        except StopIteration:
            return None
        if item[0].startswith("#"):
            self.putback(item)
            return None
        return item[0]


def parse(
    text: str,
    path: str,
    *,
    detect_types: bool = True,
) -> list[MacroRecord]:
    """
    Extract macro definitions and type declarations from source text.

    Parameters
    ----------
    text: str
        The contents of a C/C++ source file.

    path: str
        The path recorded as the source of every record.

    detect_types: bool, default: True
        Whether to record typedef, struct, union and enum names (and enum
        constants) as non-macro records.

    Returns
    -------
    list[MacroRecord]
        The records in the order they appear in the file. Malformed
        definitions are still returned, marked as unbalanced.
    """
    records: list[MacroRecord] = []
    reader = _LineReader(logical_lines(strip_comments(text), path))

    for line, lineno in reader:
        match = util.DEFINE_DIRECTIVE.match(line)
        if match:
            name, rest = match.group(1), match.group(2)
            records.append(_parse_define(name, rest, path, lineno))
            continue

        if not detect_types:
            continue

        if util.TYPEDEF_DIRECTIVE.match(line):
            full = line
            depth = full.count("{") - full.count("}")
            while not (depth == 0 and ";" in full):
                extra = reader.continuation()
                if extra is None:
                    break
                full += " " + extra
                depth += extra.count("{") - extra.count("}")
            for name in _typedef_names(full):
                records.append(_type_record(name, "typedef", path, lineno))
            continue

        match = util.STRUCT_DECLARATION.match(line)
        if match:
            records.append(
                _type_record(match.group(1), "struct", path, lineno),
            )
            continue

        match = util.UNION_DECLARATION.match(line)
        if match:
            records.append(
                _type_record(match.group(1), "union", path, lineno),
            )
            continue

        match = util.ENUM_DECLARATION.match(line)
        if match or util.ANONYMOUS_ENUM_DECLARATION.match(line):
            if match:
                records.append(
                    _type_record(match.group(1), "enum", path, lineno),
                )
            full = line
            # "enum COLOR c;" declares a variable, not an enumeration.
            while "}" not in full and ("{" in full or ";" not in full):
                extra = reader.continuation()
                if extra is None:
                    break
                full += " " + extra
            for name in _enum_constants(full):
                records.append(
                    _type_record(name, "enum constant", path, lineno),
                )

    log.debug(f"{path}: found {len(records)} definitions")
    return records
