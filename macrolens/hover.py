# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains functions for rendering the expansion of a macro invocation as
Markdown, as shown when hovering over a macro in an editor.
"""
from __future__ import annotations

import difflib
import logging
from collections.abc import Iterable, Sequence

from macrolens import util
from macrolens.config import ExpansionConfig
from macrolens.expander import MacroExpander, invocation_text
from macrolens.file_source import strip_comments
from macrolens.store import DefinitionLookup, DefinitionSnapshot, MacroStore

log = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
SIMILARITY_CUTOFF = 0.6


def suggest_names(name: str, candidates: Iterable[str]) -> list[str]:
    """
    Return up to MAX_SUGGESTIONS macro-like names similar to name, most
    similar first.
    """
    names = sorted(
        {c for c in candidates if util.is_macro_name(c) and c != name},
    )
    return difflib.get_close_matches(
        name,
        names,
        n=MAX_SUGGESTIONS,
        cutoff=SIMILARITY_CUTOFF,
    )


def _codeblock(text: str) -> str:
    return f"```cpp\n{text}\n```\n"


def _names(lookup: DefinitionLookup) -> list[str]:
    if isinstance(lookup, (MacroStore, DefinitionSnapshot)):
        return lookup.names()
    return []


def hover_text(
    name: str,
    args: Sequence[str] | None,
    lookup: DefinitionLookup,
    config: ExpansionConfig | None = None,
) -> str | None:
    """
    Render the expansion of an invocation as Markdown.

    Parameters
    ----------
    name: str
        The macro name.

    args: Sequence[str] | None
        The arguments of the call, or None for a use without arguments.

    lookup: DefinitionLookup
        The definitions to expand with.

    config: ExpansionConfig, optional
        Controls expansion and whether the definition is shown.

    Returns
    -------
    str | None
        The Markdown text, or None if there is nothing to show (a type
        name, or an unknown name without any similar names).
    """
    if isinstance(lookup, MacroStore):
        lookup = lookup.snapshot()
    if config is None:
        config = ExpansionConfig()

    records = lookup.lookup(name)
    if not records:
        if not util.is_macro_name(name):
            return None
        suggestions = suggest_names(name, _names(lookup))
        if not suggestions:
            return None
        quoted = ", ".join(f"`{s}`" for s in suggestions)
        return f"**Did you mean:** {quoted}?\n"

    record = records[0]
    if not record.is_macro_definition:
        return None

    parts = []
    if record.is_unbalanced:
        parts.append(
            "⚠️ **Unbalanced parentheses in macro definition**\n\n",
        )
        if config.hover_show_definition:
            parts.append(_codeblock(record.spelling()))
        parts.append(
            "\nThis macro has mismatched parentheses and cannot be expanded.",
        )
        return "".join(parts)

    result = MacroExpander(lookup, config).expand(name, args)

    if config.hover_show_definition:
        parts.append(_codeblock(record.spelling()))

    if result.has_errors:
        parts.append("\n❌ **Expansion Error:**\n")
        parts.append(f"{result.error_message}\n")
        return "".join(parts)

    if len(records) > 1:
        locations = ", ".join(
            f"{r.source_file}:{r.source_line}" for r in records
        )
        parts.append(
            f"\n⚠️ **{len(records)} definitions found** ({locations})\n",
        )

    if len(result.steps) > 1:
        parts.append("\n**Expansion steps:**\n")
        for step in result.steps:
            parts.append(f"- `{step.from_text}` → `{step.to_text}`\n")

    parts.append("\n**Final Result:**\n")
    parts.append(_codeblock(result.final_text))

    if result.concatenated_macros:
        parts.append("\n**Macros created via concatenation:**\n")
        for created in result.concatenated_macros:
            parts.append(f"- `{created}`\n")

    suggestions = []
    known = _names(lookup)
    for undefined in sorted(result.undefined_macros):
        similar = suggest_names(undefined, known)
        if similar:
            quoted = ", ".join(f"`{s}`" for s in similar)
            suggestions.append(f"  - `{undefined}`: Did you mean {quoted}?\n")
    if suggestions:
        parts.append("\n**Suggestions for undefined macros:**\n")
        parts.extend(suggestions)

    return "".join(parts)


def hover_at(
    text: str,
    offset: int,
    lookup: DefinitionLookup,
    config: ExpansionConfig | None = None,
) -> str | None:
    """
    Render the hover for the macro (or macro call) covering offset in
    text. Comments in text are ignored.
    """
    call = util.find_macro_at_position(strip_comments(text), offset)
    if call is None:
        return None
    log.debug(f"Hover on {invocation_text(call.name, call.args)}")
    return hover_text(call.name, call.args, lookup, config)
