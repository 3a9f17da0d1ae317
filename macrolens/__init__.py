# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Analysis of C/C++ preprocessor macros without a compiler: extracting
definitions from source files, expanding invocations step by step, and
reporting problems with the macros a file uses.
"""
from macrolens.config import ExpansionConfig, ExpansionMode, load_config
from macrolens.expander import (
    ErrorKind,
    ExpansionResult,
    ExpansionStep,
    MacroExpander,
)
from macrolens.parser import MacroRecord, parse
from macrolens.store import InMemoryStore, MacroStore, SqliteStore

__version__ = "1.0.0"

__all__ = [
    "ErrorKind",
    "ExpansionConfig",
    "ExpansionMode",
    "ExpansionResult",
    "ExpansionStep",
    "InMemoryStore",
    "MacroExpander",
    "MacroRecord",
    "MacroStore",
    "SqliteStore",
    "load_config",
    "parse",
]
