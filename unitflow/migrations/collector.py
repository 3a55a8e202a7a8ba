"""Unit collector — discover change-units in a migrations directory.

The sorted result is the application order contract: units are applied
strictly in this order.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path

from pyuca import Collator

from unitflow.errors import NotFoundError
from unitflow.models.units import ChangeUnit, UnitKind

logger = logging.getLogger(__name__)

SCRIPT_SUFFIX = ".py"
SETUP_FILE = "setup.py"
NOTES_FILE = "notes.txt"

# Entries that are never units
SKIP_NAMES = {"__pycache__"}


@lru_cache(maxsize=1)
def _collator() -> Collator:
    return Collator()


def collation_key(name: str) -> tuple[tuple[int, ...], str]:
    """Unicode collation sort key for a catalog entry name.

    Punctuation sorts before digits and digits before letters; accented
    letters sort with their base letter and lowercase precedes uppercase.
    No numeric awareness: ``10-foo`` sorts before ``2-foo``. Names that
    collate equal fall back to code point order.
    """
    return (_collator().sort_key(name), name)


def collect_units(directory: str | Path, exclude: list[str] | tuple[str, ...] = ()) -> list[str]:
    """Return the ordered catalog of unit identifiers in ``directory``.

    Args:
        directory: The migrations directory.
        exclude: Regular expressions; an entry whose name matches any of
                 them is not a unit.

    Raises:
        NotFoundError: If the directory does not exist.
    """
    root = Path(directory)
    if not root.is_dir():
        raise NotFoundError(f"Migrations directory does not exist: {root}")

    patterns = [re.compile(p) for p in exclude]
    names = [
        entry.name
        for entry in root.iterdir()
        if _is_unit(entry) and not any(p.search(entry.name) for p in patterns)
    ]
    return sorted(names, key=collation_key)


def _is_unit(entry: Path) -> bool:
    if entry.name in SKIP_NAMES or entry.name.startswith("."):
        return False
    if entry.is_dir():
        return True
    return entry.is_file() and entry.suffix == SCRIPT_SUFFIX and entry.name != SETUP_FILE


def load_unit(directory: str | Path, unit_id: str, read_notes: bool = True) -> ChangeUnit:
    """Resolve a catalog identifier into a :class:`ChangeUnit`.

    Notes come from ``notes.txt`` for directory units. Script notes are a
    module attribute and are read when the script is loaded.
    """
    path = Path(directory) / unit_id
    if not path.exists():
        raise NotFoundError(f"Unit {unit_id} not found in {directory}")

    if path.is_dir():
        notes = None
        notes_file = path / NOTES_FILE
        if read_notes and notes_file.is_file():
            notes = notes_file.read_text(encoding="utf-8")
        return ChangeUnit(id=unit_id, kind=UnitKind.ARCHIVE_BUNDLE, path=path, notes=notes)

    return ChangeUnit(id=unit_id, kind=UnitKind.EXECUTABLE_SCRIPT, path=path)
