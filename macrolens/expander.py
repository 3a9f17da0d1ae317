# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains classes and functions for expanding macro invocations and
recording every rewrite along the way.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from macrolens import util
from macrolens.config import ExpansionConfig, ExpansionMode
from macrolens.parser import MacroRecord
from macrolens.store import DefinitionLookup, MacroStore
from macrolens.substitution import (
    Context,
    classify_parameters,
    concatenate,
    substitute,
)

log = logging.getLogger(__name__)


class ErrorKind(Enum):
    """
    The ways in which an expansion can fail.
    """

    MAX_DEPTH = "max-depth"
    CIRCULAR_REFERENCE = "circular-reference"
    UNBALANCED_DEFINITION = "unbalanced-definition"


class ExpansionError(ValueError):
    """
    Raised when a macro cannot be expanded.
    """

    kind: ErrorKind


class MaxDepthExceeded(ExpansionError):
    """
    Raised when an expansion needs more levels than allowed.
    """

    kind = ErrorKind.MAX_DEPTH

    def __init__(self) -> None:
        super().__init__(
            "Maximum expansion depth reached - possible infinite recursion",
        )


class CircularReference(ExpansionError):
    """
    Raised when a macro is expanded again inside its own expansion.
    """

    kind = ErrorKind.CIRCULAR_REFERENCE

    def __init__(self, chain: Sequence[str]) -> None:
        self.chain = list(chain)
        super().__init__(
            "Circular macro reference detected: " + " -> ".join(self.chain),
        )


class UnbalancedDefinition(ExpansionError):
    """
    Raised when a macro whose definition has unbalanced parentheses is
    expanded.
    """

    kind = ErrorKind.UNBALANCED_DEFINITION

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Macro '{name}' has unbalanced parentheses in definition",
        )


@dataclass(frozen=True)
class ExpansionStep:
    """
    One rewrite of an expansion.
    """

    from_text: str
    to_text: str
    macro: str
    note: str | None
    level: int


@dataclass
class ExpansionResult:
    """
    The outcome of expanding one invocation.

    final_text is the bare invocation when nothing could be expanded or
    when the expansion failed. is_complete is True if at least one
    rewrite happened.
    """

    final_text: str
    steps: list[ExpansionStep] = field(default_factory=list)
    is_complete: bool = False
    has_errors: bool = False
    error_message: str | None = None
    error_kind: ErrorKind | None = None
    undefined_macros: set[str] = field(default_factory=set)
    concatenated_macros: list[str] = field(default_factory=list)


def invocation_key(name: str, args: Sequence[str] | None) -> str:
    if args is None:
        return name
    return f"{name}({','.join(args)})"


def invocation_text(name: str, args: Sequence[str] | None) -> str:
    if args is None:
        return name
    return f"{name}({', '.join(args)})"


class _Span(NamedTuple):
    """
    A region of rescanned text and the invocations whose replacements
    produced it, outermost first.
    """

    start: int
    end: int
    chain: tuple[str, ...]


def _chain_at(spans: list[_Span], offset: int) -> tuple[str, ...]:
    for span in spans:
        if span.start <= offset < span.end:
            return span.chain
    return ()


def _replace_span(
    spans: list[_Span],
    start: int,
    end: int,
    length: int,
    chain: tuple[str, ...],
) -> None:
    """
    Update spans after text[start:end] is replaced by length characters
    produced by the invocations in chain.
    """
    delta = length - (end - start)
    updated = []
    for span in spans:
        if span.end <= start:
            updated.append(span)
        elif span.start >= end:
            updated.append(
                _Span(span.start + delta, span.end + delta, span.chain),
            )
        else:
            if span.start < start:
                updated.append(_Span(span.start, start, span.chain))
            if span.end > end:
                updated.append(
                    _Span(end + delta, span.end + delta, span.chain),
                )
    if length:
        updated.append(_Span(start, start + length, chain))
    spans[:] = sorted(updated)


class _Expansion:
    """
    The state of one top-level expansion: the steps recorded so far, the
    invocations on the active path, and the tokens created by pasting.
    """

    def __init__(
        self,
        lookup: DefinitionLookup,
        config: ExpansionConfig,
        pinned: Mapping[str, MacroRecord] | None = None,
    ) -> None:
        self.lookup = lookup
        self.config = config
        self.pinned = pinned or {}
        self.steps: list[ExpansionStep] = []
        self.chain: list[str] = []
        self.concatenated: list[str] = []

    def definition(self, name: str) -> MacroRecord | None:
        if name in self.pinned:
            return self.pinned[name]
        records = self.lookup.lookup(name)
        if not records:
            return None
        return records[0]

    def on_paste(self, token: str, pieces: list[str]) -> None:
        """
        Remember pasted tokens that name a known macro. A token that is
        pasted onto something else is no longer reported.
        """
        for piece in pieces:
            if piece in self.concatenated:
                self.concatenated.remove(piece)
        if not util.is_macro_name(token) or token in util.BUILTIN_IDENTIFIERS:
            return
        if token not in self.concatenated and self.lookup.lookup(token):
            self.concatenated.append(token)

    def _is_candidate(
        self,
        inv: util.Invocation,
        include_unbalanced: bool,
    ) -> bool:
        record = self.definition(inv.name)
        if record is None or not record.is_macro_definition:
            return False
        if record.is_unbalanced:
            return include_unbalanced
        return record.accepts(inv.args)

    def candidates(
        self,
        text: str,
        include_unbalanced: bool = True,
    ) -> list[util.Invocation]:
        """
        Return every invocation in text that can be expanded.

        Invocations inside an argument that the enclosing macro only
        stringifies or pastes are not candidates, since that argument
        must be used exactly as written.
        """
        found = [
            inv
            for inv in util.find_invocations(text)
            if self._is_candidate(inv, include_unbalanced)
        ]

        protected: list[tuple[int, int]] = []
        for inv in found:
            record = self.definition(inv.name)
            if not record.parameters or record.is_unbalanced:
                continue
            contexts = classify_parameters(record.body, record.parameters)
            for i, (start, end) in enumerate(inv.arg_spans):
                param = record.parameters[min(i, len(record.parameters) - 1)]
                used = contexts.get(param, set())
                if used and Context.PLAIN not in used:
                    protected.append((start, end))

        if not protected:
            return found
        return [
            inv
            for inv in found
            if not any(start <= inv.start < end for start, end in protected)
        ]

    def replacement(self, inv: util.Invocation) -> str:
        """
        Return the text that replaces an invocation during a rescan.
        Arguments are used as written; the rescan itself expands them.
        """
        record = self.definition(inv.name)
        if record.is_unbalanced:
            raise UnbalancedDefinition(inv.name)
        if record.is_function_like:
            return substitute(
                record.body,
                record.parameters,
                inv.args,
                on_paste=self.on_paste,
            )
        return concatenate(record.body, self.on_paste)

    def select(
        self,
        candidates: list[util.Invocation],
    ) -> list[util.Invocation]:
        """
        Choose the invocations the next pass expands, in the order they
        must be replaced (highest offset first).
        """
        deepest = max(inv.depth for inv in candidates)
        if self.config.expansion_mode is ExpansionMode.SINGLE_MACRO:
            first = min(
                (inv for inv in candidates if inv.depth == deepest),
                key=lambda inv: inv.start,
            )
            return [first]
        chosen = [inv for inv in candidates if inv.depth == deepest]
        return sorted(chosen, key=lambda inv: inv.start, reverse=True)

    def rewrite(
        self,
        text: str,
        chosen: list[util.Invocation],
        spans: list[_Span] | None = None,
    ) -> str:
        """
        Replace the chosen invocations in text.

        An invocation is circular if it is already on the path that
        produced it: the active chain plus the chain of the span holding
        its name. spans is updated to describe the rewritten text.
        """
        if spans is None:
            spans = []
        for inv in chosen:
            key = invocation_key(inv.name, inv.args)
            produced_by = _chain_at(spans, inv.start)
            chain = self.chain + list(produced_by)
            if key in chain:
                raise CircularReference(chain + [key])
            replacement = self.replacement(inv)
            text = text[: inv.start] + replacement + text[inv.end :]
            _replace_span(
                spans,
                inv.start,
                inv.end,
                len(replacement),
                produced_by + (key,),
            )
        return text

    def expand_text(
        self,
        text: str,
        level: int,
        steps: list[ExpansionStep] | None,
    ) -> str:
        """
        Rescan text, one pass per level, until no invocation is left.
        """
        spans: list[_Span] = []
        while True:
            candidates = self.candidates(text)
            if not candidates:
                return text
            if level >= self.config.max_expansion_depth:
                raise MaxDepthExceeded()

            chosen = self.select(candidates)
            expanded = self.rewrite(text, chosen, spans)
            if expanded == text:
                return text

            if steps is not None:
                spellings = [inv.spelling() for inv in reversed(chosen)]
                if self.config.expansion_mode is ExpansionMode.SINGLE_MACRO:
                    macro = chosen[0].name
                    note = f"Expand {spellings[0]}"
                else:
                    macro = ", ".join(spellings)
                    note = f"Expand macros at same level: {macro}"
                steps.append(ExpansionStep(text, expanded, macro, note, level))

            text = expanded
            level += 1

    def expand_recursive(
        self,
        name: str,
        args: list[str] | None,
        level: int,
    ) -> str:
        if level >= self.config.max_expansion_depth:
            raise MaxDepthExceeded()

        key = invocation_key(name, args)
        if key in self.chain:
            raise CircularReference(self.chain + [key])

        record = self.definition(name)
        if record is None or not record.is_macro_definition:
            return invocation_text(name, args)
        if record.is_unbalanced:
            raise UnbalancedDefinition(name)

        self.chain.append(key)
        try:
            if record.is_function_like and args is not None:

                def expand_arg(arg: str) -> str:
                    return self.expand_text(arg, level + 1, None)

                body = substitute(
                    record.body,
                    record.parameters,
                    args,
                    expand_arg,
                    self.on_paste,
                )
                note = "Function-like macro expansion"
            else:
                body = concatenate(record.body, self.on_paste)
                if record.is_function_like:
                    note = "Function-like macro definition"
                else:
                    note = "Object-like macro expansion"

            source = invocation_text(name, args)
            self.steps.append(ExpansionStep(source, body, name, note, level))
            return self.expand_text(body, level + 1, self.steps)
        finally:
            self.chain.pop()

    def undefined(self, text: str, exclude: Sequence[str]) -> set[str]:
        """
        Return the names in text that look like macros but have no
        definition, ignoring string literals and built-in names.
        """
        literals = util.string_literal_ranges(text)
        found = set()
        for match in util.MACRO_NAME.finditer(text):
            name = match.group(0)
            if util.in_ranges(match.start(), literals):
                continue
            if name in util.BUILTIN_IDENTIFIERS or name in exclude:
                continue
            if not self.lookup.lookup(name):
                found.add(name)
        return found


class MacroExpander:
    """
    Expands macro invocations against a set of definitions.

    Parameters
    ----------
    lookup: DefinitionLookup
        The definitions to expand with. A MacroStore is read through a
        snapshot, so that one expansion never sees a partial update.

    config: ExpansionConfig, optional
        The expansion mode, depth limit and presentation options.
    """

    def __init__(
        self,
        lookup: DefinitionLookup,
        config: ExpansionConfig | None = None,
    ) -> None:
        self.lookup = lookup
        self.config = config if config is not None else ExpansionConfig()

    def _definitions(self) -> DefinitionLookup:
        if isinstance(self.lookup, MacroStore):
            return self.lookup.snapshot()
        return self.lookup

    def expand(
        self,
        name: str,
        args: Sequence[str] | None = None,
    ) -> ExpansionResult:
        """
        Fully expand one invocation.

        Failures (depth limit, circular reference, unbalanced definition)
        are reported through the result and never raised.
        """
        if args is not None:
            args = list(args)
        state = _Expansion(self._definitions(), self.config)
        bare = invocation_text(name, args)

        record = state.definition(name)
        if record is None or not record.is_macro_definition:
            return ExpansionResult(bare)
        mismatched = args is not None and not record.accepts(args)
        if mismatched and not record.is_unbalanced:
            log.debug(f"{name} does not accept {len(args)} arguments")
            return ExpansionResult(bare)

        try:
            final_text = state.expand_recursive(name, args, 0)
        except ExpansionError as e:
            log.debug(f"Failed to expand {bare}: {e}")
            return ExpansionResult(
                bare,
                steps=state.steps,
                has_errors=True,
                error_message=str(e),
                error_kind=e.kind,
            )

        if self.config.strip_extra_parentheses:
            final_text = util.strip_parentheses(final_text)

        exclude = record.parameters or ()
        if record.is_variadic:
            exclude = exclude + (record.variadic_name,)
        return ExpansionResult(
            final_text,
            steps=state.steps,
            is_complete=bool(state.steps),
            undefined_macros=state.undefined(final_text, exclude),
            concatenated_macros=list(state.concatenated),
        )

    def expand_once(
        self,
        text: str,
        *,
        definition_context: Mapping[str, MacroRecord] | None = None,
    ) -> tuple[str, list[str]] | None:
        """
        Apply a single rescan pass to text in the configured mode.

        Parameters
        ----------
        text: str
            The text to rescan.

        definition_context: Mapping[str, MacroRecord], optional
            Definitions to use instead of the first definition of a name.

        Returns
        -------
        tuple[str, list[str]] | None
            The rewritten text and the names expanded by the pass, or None
            if text contains nothing that can be expanded. Invocations of
            unbalanced definitions are never expanded.
        """
        state = _Expansion(
            self._definitions(),
            self.config,
            definition_context,
        )
        candidates = state.candidates(text, include_unbalanced=False)
        if not candidates:
            return None
        chosen = state.select(candidates)
        expanded = state.rewrite(text, chosen)
        if expanded == text:
            return None
        return expanded, [inv.name for inv in reversed(chosen)]
