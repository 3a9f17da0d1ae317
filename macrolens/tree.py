# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains the ExpansionNode class, a lazily-built tree that shows an
expansion one rescan pass at a time, with a branch for every definition
of a macro that has been defined more than once.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from macrolens.config import ExpansionConfig
from macrolens.expander import MacroExpander, invocation_text
from macrolens.parser import MacroRecord
from macrolens.store import DefinitionLookup, MacroStore

log = logging.getLogger(__name__)


@dataclass(eq=False)
class ExpansionNode:
    """
    The text of an expansion after some number of rescan passes.

    A node created for one of several definitions of a macro records the
    macro and the index of the definition, and every node below it keeps
    using that definition.
    """

    text: str
    expander: MacroExpander
    level: int = 0
    macro: str | None = None
    definition_index: int | None = None
    definition_context: dict[str, MacroRecord] = field(default_factory=dict)
    error: str | None = None
    _children: list[ExpansionNode] | None = field(default=None, repr=False)

    @classmethod
    def root(
        cls,
        name: str,
        args: Sequence[str] | None,
        lookup: DefinitionLookup,
        config: ExpansionConfig | None = None,
    ) -> ExpansionNode:
        if isinstance(lookup, MacroStore):
            lookup = lookup.snapshot()
        expander = MacroExpander(lookup, config)
        result = expander.expand(name, args)
        return cls(
            invocation_text(name, list(args) if args is not None else None),
            expander,
            error=result.error_message,
        )

    @property
    def label(self) -> str:
        if self.definition_index is None:
            return self.text
        return f"{self.text} [{self.macro} def {self.definition_index + 1}]"

    def _child(
        self,
        text: str,
        macro: str | None = None,
        index: int | None = None,
        context: dict[str, MacroRecord] | None = None,
    ) -> ExpansionNode:
        return ExpansionNode(
            text,
            self.expander,
            self.level + 1,
            macro,
            index,
            context if context is not None else dict(self.definition_context),
        )

    def _redefined(
        self,
        names: list[str],
    ) -> tuple[str, list[MacroRecord]] | None:
        """
        Return the first name rewritten by the next pass that has more
        than one usable definition and has not been pinned yet.
        """
        for name in names:
            if name in self.definition_context:
                continue
            records = [
                r
                for r in self.expander.lookup.lookup(name)
                if r.is_macro_definition and not r.is_unbalanced
            ]
            if len(records) > 1:
                return name, records
        return None

    def _build_children(self) -> list[ExpansionNode]:
        if self.error is not None:
            return []
        if self.level >= self.expander.config.max_expansion_depth:
            return []

        step = self.expander.expand_once(
            self.text,
            definition_context=self.definition_context,
        )
        if step is None:
            return []
        text, names = step

        redefined = self._redefined(names)
        if redefined is None:
            return [self._child(text)]

        name, records = redefined
        log.debug(f"Branching on {len(records)} definitions of {name}")
        children = []
        for index, record in enumerate(records):
            context = dict(self.definition_context)
            context[name] = record
            branch = self.expander.expand_once(
                self.text,
                definition_context=context,
            )
            if branch is None:
                continue
            children.append(self._child(branch[0], name, index, context))
        return children

    def children(self) -> list[ExpansionNode]:
        """
        Return the nodes one rescan pass further on, building them on
        first use. A node whose text cannot be expanded further has no
        children.
        """
        if self._children is None:
            self._children = self._build_children()
        return self._children

    def walk(self) -> Iterator[ExpansionNode]:
        """
        Yield this node and every node below it, depth first.
        """
        yield self
        for child in self.children():
            yield from child.walk()
