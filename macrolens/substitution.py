# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains functions for replacing the parameters of a macro body with
the arguments of a call, including the # (stringify) and ## (token
paste) operators.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from enum import Enum

from macrolens import util
from macrolens.file_source import strip_inline_comments

log = logging.getLogger(__name__)

_TOKEN = r"[A-Za-z_]\w*|\d+|[+\-*/<>=!&|^%~]+"
_PASTE = re.compile(rf"(?P<left>{_TOKEN})?(?:\s*##\s*(?:{_TOKEN})?)+")
_PASTE_SEPARATOR = re.compile(r"\s*##\s*")
_IDENTIFIER = re.compile(r"\b[A-Za-z_]\w*\b")
_PLACEHOLDER = re.compile(r"\x00(\d+)\x00")

PasteCallback = Callable[[str, list[str]], None]
"""
Called with the token synthesized by a paste and the pieces it was
pasted from.
"""


class Context(Enum):
    """
    How a parameter occurrence in a macro body is used.
    """

    STRINGIFY = "stringify"
    PASTE = "paste"
    PLAIN = "plain"


def _occurrence_context(body: str, start: int, end: int) -> Context:
    before = body[:start].rstrip()
    after = body[end:].lstrip()
    if before.endswith("##") or after.startswith("##"):
        return Context.PASTE
    if before.endswith("#"):
        return Context.STRINGIFY
    return Context.PLAIN


def _parameter_names(parameters: Sequence[str]) -> dict[str, int]:
    """
    Map every name a parameter can be referred to by onto its index.
    """
    names = {}
    for i, param in enumerate(parameters):
        if param.endswith("..."):
            name = param[:-3].strip()
            names[name if name else util.VA_ARGS] = i
        else:
            names[param] = i
    return names


def _occurrences(
    body: str,
    parameters: Sequence[str],
) -> list[tuple[int, int, int, Context]]:
    """
    Returns
    -------
    list[tuple[int, int, int, Context]]
        (start, end, parameter index, context) for every use of a
        parameter in body outside string and character literals. The
        span of a stringified use includes its '#'.
    """
    names = _parameter_names(parameters)
    literals = util.string_literal_ranges(body)
    found = []
    for match in _IDENTIFIER.finditer(body):
        index = names.get(match.group(0))
        if index is None or util.in_ranges(match.start(), literals):
            continue
        start, end = match.span()
        context = _occurrence_context(body, start, end)
        if context is Context.STRINGIFY:
            start = body.rindex("#", 0, start)
        found.append((start, end, index, context))
    return found


def classify_parameters(
    body: str,
    parameters: Sequence[str],
) -> dict[str, set[Context]]:
    """
    Return the contexts in which each parameter is used in body.
    A parameter that is never used maps to an empty set.
    """
    contexts: dict[str, set[Context]] = {p: set() for p in parameters}
    for _, _, index, context in _occurrences(body, parameters):
        contexts[parameters[index]].add(context)
    return contexts


def stringify(argument: str) -> str:
    """
    Return argument as a string literal, as the # operator does.
    """
    text = strip_inline_comments(argument)
    text = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def _argument_values(
    parameters: Sequence[str],
    arguments: Sequence[str],
) -> list[str]:
    values = []
    for i, param in enumerate(parameters):
        if param.endswith("..."):
            values.append(", ".join(arguments[i:]))
        elif i < len(arguments):
            values.append(arguments[i])
        else:
            values.append("")
    return values


def concatenate(text: str, on_paste: PasteCallback | None = None) -> str:
    """
    Collapse every "left ## right" in text into "leftright".

    A chain such as "A ## B ## C" is pasted in one step. The result of
    a paste is not scanned for further pastes. A missing operand pastes
    as nothing, so "x ##" becomes "x".
    """
    if "##" not in text:
        return text

    literals = util.string_literal_ranges(text)

    def paste(match: re.Match) -> str:
        if util.in_ranges(match.start(), literals):
            return match.group(0)
        pieces = _PASTE_SEPARATOR.split(match.group(0).strip())
        pieces = [p for p in pieces if p]
        result = "".join(pieces)
        if on_paste is not None and result:
            on_paste(result, pieces)
        # Keep the whitespace that separated an empty left operand.
        if match.group("left") is None and match.group(0)[:1].isspace():
            return " " + result
        return result

    return _PASTE.sub(paste, text)


def substitute(
    body: str,
    parameters: Sequence[str],
    arguments: Sequence[str],
    expand_arg: Callable[[str], str] | None = None,
    on_paste: PasteCallback | None = None,
) -> str:
    """
    Replace the parameters of a function-like macro body with arguments.

    Parameters
    ----------
    body: str
        The replacement list of the macro.

    parameters: Sequence[str]
        The parameter names. A last parameter of "..." (or "name...")
        receives all remaining arguments, joined with ", ".

    arguments: Sequence[str]
        The arguments of the call, already split and trimmed.

    expand_arg: Callable[[str], str], optional
        Called to fully expand an argument used as a plain parameter.
        Arguments of # and ## are always used as written.

    on_paste: Callable[[str, list[str]], None], optional
        Passed through to concatenate.

    Returns
    -------
    str
        The body with every parameter replaced and every ## applied.
    """
    values = _argument_values(parameters, arguments)
    expanded: dict[int, str] = {}

    # Phase one replaces each use with a placeholder, so that argument
    # text can never be mistaken for another parameter.
    replacements: list[str] = []
    pieces = []
    pos = 0
    for start, end, index, context in _occurrences(body, parameters):
        if context is Context.STRINGIFY:
            replacement = stringify(values[index])
        elif context is Context.PASTE or expand_arg is None:
            replacement = values[index]
        else:
            if index not in expanded:
                expanded[index] = expand_arg(values[index])
            replacement = expanded[index]
        pieces.append(body[pos:start])
        pieces.append(f"\x00{len(replacements)}\x00")
        replacements.append(replacement)
        pos = end
    pieces.append(body[pos:])
    template = "".join(pieces)

    # Phase two fills the placeholders in.
    result = _PLACEHOLDER.sub(
        lambda m: replacements[int(m.group(1))],
        template,
    )

    return concatenate(result, on_paste)
