# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains the configuration consumed by the expander and its consumers,
and functions for loading it from TOML files.
"""
from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any

log = logging.getLogger(__name__)

MIN_EXPANSION_DEPTH = 1
MAX_EXPANSION_DEPTH = 100


class ExpansionMode(str, Enum):
    """
    Which invocations each rescan pass expands.

    SINGLE_MACRO expands the deepest, left-most invocation only.
    SINGLE_LAYER expands every invocation at the deepest nesting level.
    """

    SINGLE_MACRO = "single-macro"
    SINGLE_LAYER = "single-layer"


# Keys accepted in addition to the field names.
_ALIASES = {
    "expansionMode": "expansion_mode",
    "maxExpansionDepth": "max_expansion_depth",
    "stripExtraParentheses": "strip_extra_parentheses",
    "detectTypeDeclarations": "detect_type_declarations",
    "hoverShowDefinition": "hover_show_definition",
}


@dataclass(frozen=True)
class ExpansionConfig:
    """
    A fully-resolved configuration.
    """

    expansion_mode: ExpansionMode = ExpansionMode.SINGLE_LAYER
    max_expansion_depth: int = 30
    strip_extra_parentheses: bool = True
    detect_type_declarations: bool = True
    hover_show_definition: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.expansion_mode, ExpansionMode):
            try:
                mode = ExpansionMode(self.expansion_mode)
            except ValueError:
                raise ValueError(
                    f"Unknown expansion mode: {self.expansion_mode!r}",
                ) from None
            object.__setattr__(self, "expansion_mode", mode)

        depth = self.max_expansion_depth
        if isinstance(depth, bool) or not isinstance(depth, int):
            raise TypeError("'max_expansion_depth' must be an int")
        if not MIN_EXPANSION_DEPTH <= depth <= MAX_EXPANSION_DEPTH:
            raise ValueError(
                "'max_expansion_depth' must be between "
                + f"{MIN_EXPANSION_DEPTH} and {MAX_EXPANSION_DEPTH}",
            )

        for name in (
            "strip_extra_parentheses",
            "detect_type_declarations",
            "hover_show_definition",
        ):
            if not isinstance(getattr(self, name), bool):
                raise TypeError(f"'{name}' must be a bool")

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> ExpansionConfig:
        """
        Build a configuration from a mapping using either the field
        names or their camelCase spellings.

        Raises
        ------
        ValueError
            If the mapping contains an unknown key.
        """
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in values.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                raise ValueError(f"Unknown configuration option: {key!r}")
            kwargs[name] = value
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> ExpansionConfig:
        """
        Return a copy with every override that is not None applied.
        """
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def load_config(path: str | os.PathLike[str]) -> ExpansionConfig:
    """
    Load a configuration from a TOML file.

    The options are read from the [macrolens] table if there is one,
    and from the top level of the document otherwise.
    """
    with open(path, "rb") as f:
        document = tomllib.load(f)

    values = document.get("macrolens", document)
    if not isinstance(values, dict):
        raise TypeError("'macrolens' must be a table")

    log.debug(f"Loaded configuration from {path}")
    return ExpansionConfig.from_dict(values)
