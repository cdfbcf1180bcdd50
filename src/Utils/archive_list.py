"""
archive_list.py
Read and edit the resource archive list in a game's custom INI.

Format:
  [Archive]
  sResourceArchive2List = First.ba2, Second.ba2, Third.ba2

Order in the value defines load order (first entry = loaded first).  Names
are compared case-insensitively, as the game does; the spelling already in
the file is kept.  Every write goes through configparser so unrelated
sections and keys survive untouched, and key spelling is preserved.
"""

from __future__ import annotations

import configparser
import io
from pathlib import Path

from Utils.errors import ConfigNotFoundError, MalformedDataError, StorageError
from Utils.fileio import write_text_atomic

ARCHIVE_SECTION = "Archive"
DEFAULT_ARCHIVE_KEY = "sResourceArchive2List"
_SEPARATOR = ", "


def parse_archive_list(value: str) -> list[str]:
    """Split a comma separated value into names, dropping blanks and repeats."""
    names: list[str] = []
    seen: set[str] = set()
    for part in value.split(","):
        name = part.strip()
        if name and name.lower() not in seen:
            seen.add(name.lower())
            names.append(name)
    return names


def format_archive_list(names: list[str]) -> str:
    return _SEPARATOR.join(names)


def _new_parser() -> configparser.ConfigParser:
    cp = configparser.ConfigParser(interpolation=None, strict=False)
    cp.optionxform = str  # Bethesda keys are camel-cased; keep them as written
    return cp


def _load(ini_path: Path, missing_ok: bool) -> configparser.ConfigParser:
    cp = _new_parser()
    try:
        text = ini_path.read_text(encoding="utf-8-sig")
    except FileNotFoundError as exc:
        if missing_ok:
            return cp
        raise ConfigNotFoundError(f"failed to load {ini_path.name}: file not found", ini_path) from exc
    except OSError as exc:
        raise StorageError(f"failed to load {ini_path}: {exc}", ini_path) from exc
    try:
        cp.read_string(text, source=str(ini_path))
    except configparser.Error as exc:
        raise MalformedDataError(f"failed to parse {ini_path}: {exc}", ini_path) from exc
    return cp


def _save(cp: configparser.ConfigParser, ini_path: Path) -> None:
    buf = io.StringIO()
    cp.write(buf)
    write_text_atomic(ini_path, buf.getvalue())


def _locate(cp: configparser.ConfigParser, key: str) -> tuple[str, str]:
    """Return the (section, key) spelling to use, creating the section if absent."""
    section = next(
        (s for s in cp.sections() if s.lower() == ARCHIVE_SECTION.lower()),
        None,
    )
    if section is None:
        cp.add_section(ARCHIVE_SECTION)
        return ARCHIVE_SECTION, key
    existing = next((k for k in cp[section] if k.lower() == key.lower()), key)
    return section, existing


def _get_list(cp: configparser.ConfigParser, key: str) -> tuple[str, str, list[str]]:
    section, opt = _locate(cp, key)
    return section, opt, parse_archive_list(cp.get(section, opt, fallback=""))


def read_archive_list(ini_path: Path, key: str = DEFAULT_ARCHIVE_KEY) -> list[str]:
    """Return the archive names in order; a missing INI yields []."""
    cp = _load(ini_path, missing_ok=True)
    _, _, names = _get_list(cp, key)
    return names


def add_archive(ini_path: Path, archive_name: str,
                key: str = DEFAULT_ARCHIVE_KEY) -> bool:
    """
    Append *archive_name* to the list unless it is already present.
    A missing INI is treated as empty and created.
    Returns True if the name was added.
    """
    cp = _load(ini_path, missing_ok=True)
    section, opt, names = _get_list(cp, key)
    if archive_name.lower() in {n.lower() for n in names}:
        return False
    names.append(archive_name)
    cp.set(section, opt, format_archive_list(names))
    _save(cp, ini_path)
    return True


def remove_archive(ini_path: Path, archive_name: str,
                   key: str = DEFAULT_ARCHIVE_KEY) -> bool:
    """
    Remove *archive_name* from the list, leaving the remaining names joined
    by ", " with no stray separator.  Removing the only entry leaves an empty
    value.  The INI must exist: removal implies an earlier add.
    Returns True if the name was present.
    """
    cp = _load(ini_path, missing_ok=False)
    section, opt, names = _get_list(cp, key)
    kept = [n for n in names if n.lower() != archive_name.lower()]
    if len(kept) == len(names):
        return False
    cp.set(section, opt, format_archive_list(kept))
    _save(cp, ini_path)
    return True


def set_archive_list(ini_path: Path, archives: list[str],
                     key: str = DEFAULT_ARCHIVE_KEY) -> None:
    """Replace the whole list with *archives* (repeats dropped, order kept)."""
    cp = _load(ini_path, missing_ok=True)
    section, opt = _locate(cp, key)
    cp.set(section, opt, format_archive_list(parse_archive_list(",".join(archives))))
    _save(cp, ini_path)
