# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause
"""
Contains functions for finding and parsing the source files of a project
and keeping a definition store up to date with them.
"""

import logging
import os
from collections.abc import Generator, Iterable
from pathlib import Path

from tqdm import tqdm

from macrolens import util
from macrolens.parser import parse
from macrolens.store import MacroStore

log = logging.getLogger(__name__)

DEFAULT_EXCLUDES = frozenset(["node_modules", "build", "dist", ".git"])


def _source_files(
    rootdir: Path,
    excludes: Iterable[str],
) -> Generator[Path, None, None]:
    excludes = set(excludes)
    for dirpath, dirnames, filenames in os.walk(rootdir):
        dirnames[:] = sorted(d for d in dirnames if d not in excludes)
        for filename in sorted(filenames):
            if util.CPP_FILE_EXTENSION.search(filename):
                yield Path(dirpath) / filename


def _relative(rootdir: Path, path: Path) -> str:
    try:
        return path.relative_to(rootdir).as_posix()
    except ValueError:
        return path.as_posix()


def _parse_file(
    rootdir: Path,
    path: Path,
    store: MacroStore,
    detect_types: bool,
) -> bool:
    """
    Replace the records of one file. Return False if it could not be read.
    """
    name = _relative(rootdir, path)
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError as e:
        log.warning(f"Could not read {name}: {e}")
        return False

    log.debug(f"Parsing {name}")
    store.replace_file(name, parse(text, name, detect_types=detect_types))
    return True


def find(
    rootdir: str | os.PathLike[str],
    store: MacroStore,
    *,
    show_progress: bool = False,
    excludes: Iterable[str] = DEFAULT_EXCLUDES,
    detect_types: bool = True,
) -> list[str]:
    """
    Parse every C/C++ source file below rootdir into store.

    Files are recorded by their path relative to rootdir. A file that
    cannot be read is skipped with a warning.

    Returns
    -------
    list[str]
        The relative paths of the files that were parsed.
    """
    rootdir = Path(rootdir).resolve()

    potential_files = []
    for f in tqdm(
        _source_files(rootdir, excludes),
        desc="Scanning current directory",
        unit=" files",
        leave=False,
        disable=not show_progress,
    ):
        potential_files.append(f)

    parsed = []
    for f in tqdm(
        potential_files,
        desc="Parsing",
        unit=" file",
        leave=False,
        disable=not show_progress,
    ):
        if _parse_file(rootdir, f, store, detect_types):
            parsed.append(_relative(rootdir, f))

    log.info(f"Found {len(store)} definitions in {len(parsed)} files")
    return parsed


def rescan(
    rootdir: str | os.PathLike[str],
    store: MacroStore,
    paths: Iterable[str | os.PathLike[str]],
    *,
    detect_types: bool = True,
) -> None:
    """
    Parse the given files again. A file that no longer exists, or that
    is not a C/C++ source file, has its records removed.
    """
    rootdir = Path(rootdir).resolve()
    for path in paths:
        path = Path(path)
        if not path.is_absolute():
            path = rootdir / path
        path = path.resolve()
        is_source = util.CPP_FILE_EXTENSION.search(path.name) is not None
        if is_source and path.is_file():
            _parse_file(rootdir, path, store, detect_types)
        else:
            store.remove_file(_relative(rootdir, path))


def remove(
    rootdir: str | os.PathLike[str],
    store: MacroStore,
    paths: Iterable[str | os.PathLike[str]],
) -> None:
    """
    Remove the records of the given files.
    """
    rootdir = Path(rootdir).resolve()
    for path in paths:
        path = Path(path)
        if not path.is_absolute():
            path = rootdir / path
        path = path.resolve()
        store.remove_file(_relative(rootdir, path))
