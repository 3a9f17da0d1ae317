# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains the definition store: a name-indexed collection of the records
found in every file of a project, with a map-backed and an SQLite-backed
implementation.

A file's records are always replaced as a whole, so readers never see a
mix of a file's old and new definitions.
"""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

from macrolens.parser import MacroRecord

log = logging.getLogger(__name__)


class DefinitionLookup(Protocol):
    """
    Anything that can return the definitions of a name.
    """

    def lookup(self, name: str) -> Sequence[MacroRecord]: ...


class DefinitionSnapshot:
    """
    An immutable, point-in-time view of a store.
    """

    def __init__(self, index: Mapping[str, tuple[MacroRecord, ...]]) -> None:
        self._index = dict(index)

    @classmethod
    def from_records(
        cls,
        records: Iterable[MacroRecord],
    ) -> DefinitionSnapshot:
        index: dict[str, list[MacroRecord]] = {}
        for record in records:
            index.setdefault(record.name, []).append(record)
        return cls({k: tuple(v) for k, v in index.items()})

    def lookup(self, name: str) -> tuple[MacroRecord, ...]:
        return self._index.get(name, ())

    def names(self) -> list[str]:
        return list(self._index)

    def snapshot(self) -> DefinitionSnapshot:
        return self

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return sum(len(records) for records in self._index.values())


class MacroStore(ABC):
    """
    Represents the definitions of every file in a project.
    Definitions are ordered by file (in the order files were last
    replaced) and then by position within the file.
    """

    @abstractmethod
    def replace_file(self, path: str, records: Iterable[MacroRecord]) -> None:
        """
        Atomically replace every record that came from path.
        """

    @abstractmethod
    def remove_file(self, path: str) -> None:
        """
        Remove every record that came from path.
        """

    @abstractmethod
    def files(self) -> list[str]:
        pass

    @abstractmethod
    def snapshot(self) -> DefinitionSnapshot:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    def lookup(self, name: str) -> Sequence[MacroRecord]:
        return self.snapshot().lookup(name)

    def names(self) -> list[str]:
        return self.snapshot().names()

    def __len__(self) -> int:
        return len(self.snapshot())


class InMemoryStore(MacroStore):
    """
    A store kept in a dictionary. Updates build a new dictionary and
    swap it in, so snapshots never change after they are taken.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._files: dict[str, tuple[MacroRecord, ...]] = {}
        self._snapshot: DefinitionSnapshot | None = None

    def replace_file(self, path: str, records: Iterable[MacroRecord]) -> None:
        records = tuple(records)
        with self._lock:
            files = dict(self._files)
            files.pop(path, None)
            if records:
                files[path] = records
            self._files = files
            self._snapshot = None
        log.debug(f"Replaced {path} with {len(records)} records")

    def remove_file(self, path: str) -> None:
        with self._lock:
            if path not in self._files:
                return
            files = dict(self._files)
            del files[path]
            self._files = files
            self._snapshot = None
        log.debug(f"Removed {path}")

    def files(self) -> list[str]:
        return list(self._files)

    def snapshot(self) -> DefinitionSnapshot:
        with self._lock:
            if self._snapshot is None:
                self._snapshot = DefinitionSnapshot.from_records(
                    record
                    for records in self._files.values()
                    for record in records
                )
            return self._snapshot

    def clear(self) -> None:
        with self._lock:
            self._files = {}
            self._snapshot = None


_SCHEMA = """
CREATE TABLE IF NOT EXISTS macros (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    parameters TEXT,
    body TEXT NOT NULL,
    source_file TEXT NOT NULL,
    source_line INTEGER NOT NULL,
    is_macro_definition INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS macros_name ON macros (name);
CREATE INDEX IF NOT EXISTS macros_file ON macros (source_file);
"""

_COLUMNS = (
    "name, parameters, body, source_file, source_line, is_macro_definition"
)


def _to_row(record: MacroRecord) -> tuple:
    parameters = None
    if record.parameters is not None:
        parameters = json.dumps(list(record.parameters))
    return (
        record.name,
        parameters,
        record.body,
        record.source_file,
        record.source_line,
        int(record.is_macro_definition),
    )


def _from_row(row: Sequence) -> MacroRecord:
    name, parameters, body, source_file, source_line, is_definition = row
    if parameters is not None:
        parameters = tuple(json.loads(parameters))
    return MacroRecord(
        name,
        parameters,
        body,
        source_file,
        source_line,
        bool(is_definition),
    )


class SqliteStore(MacroStore):
    """
    A store kept in an SQLite database. Each file is replaced inside a
    single transaction.
    """

    def __init__(self, database: str | os.PathLike[str] = ":memory:") -> None:
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(database, check_same_thread=False)
        with self._conn:
            self._conn.executescript(_SCHEMA)

    def replace_file(self, path: str, records: Iterable[MacroRecord]) -> None:
        rows = [_to_row(record) for record in records]
        with self._lock, self._conn:
            self._conn.execute(
                "DELETE FROM macros WHERE source_file = ?",
                (path,),
            )
            self._conn.executemany(
                f"INSERT INTO macros ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
        log.debug(f"Replaced {path} with {len(rows)} records")

    def remove_file(self, path: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "DELETE FROM macros WHERE source_file = ?",
                (path,),
            )
        log.debug(f"Removed {path}")

    def files(self) -> list[str]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT source_file FROM macros "
                + "GROUP BY source_file ORDER BY MIN(id)",
            )
            return [row[0] for row in cursor]

    def lookup(self, name: str) -> list[MacroRecord]:
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT {_COLUMNS} FROM macros WHERE name = ? ORDER BY id",
                (name,),
            )
            return [_from_row(row) for row in cursor]

    def names(self) -> list[str]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT name FROM macros GROUP BY name ORDER BY MIN(id)",
            )
            return [row[0] for row in cursor]

    def snapshot(self) -> DefinitionSnapshot:
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT {_COLUMNS} FROM macros ORDER BY id",
            )
            return DefinitionSnapshot.from_records(
                _from_row(row) for row in cursor
            )

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM macros")

    def __len__(self) -> int:
        with self._lock:
            cursor = self._conn.execute("SELECT COUNT(*) FROM macros")
            return cursor.fetchone()[0]

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> SqliteStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
