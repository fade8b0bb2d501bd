# Copyright Red Hat
#
# fst/treecreate.py - File system test trees declarative creation
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Create file system trees from a JSON description.

The description is a JSON array of objects, one per entry::

    [
        {"Name": "data/", "Perm": "0755", "MTime": "2017-01-01T12:00:00Z"},
        {"Name": "data/one.txt", "Perm": 420, "Contents": "one\\n"}
    ]

``Name`` is a relative path: a trailing ``/`` marks a directory. ``Perm``
is an integer or an octal string, ``MTime`` an ISO 8601 timestamp and
``Contents`` the text of a regular file. Key names are not case
sensitive. Only ``Name`` is required.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, TextIO, Union
import logging
import json
import os

from fst import (
    FST_SUBSYSTEM_TREE,
    PERM_MASK,
    FstParseError,
    FstSystemError,
)

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info


def _log_debug_tree(msg, *args, **kwargs):
    """A wrapper for tree subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FST_SUBSYSTEM_TREE}, **kwargs)


DEFAULT_DIR_PERM = 0o755
DEFAULT_FILE_PERM = 0o644

_KEY_NAME = "name"
_KEY_PERM = "perm"
_KEY_MTIME = "mtime"
_KEY_CONTENTS = "contents"

_VALID_KEYS = (_KEY_NAME, _KEY_PERM, _KEY_MTIME, _KEY_CONTENTS)


@dataclass(frozen=True)
class TreeEntry:
    """
    A single entry of a declarative tree description.
    """

    #: Path relative to the tree root
    name: str
    #: Low nine permission bits
    perm: int
    #: Modification time to apply, or ``None`` to leave the creation time
    mtime: Optional[datetime] = None
    #: Text content of a regular file
    contents: str = ""
    #: True if this entry is a directory
    is_dir: bool = False

    def __str__(self):
        kind = "dir" if self.is_dir else "file"
        mtime = self.mtime.isoformat() if self.mtime else "-"
        return f"{self.name} ({kind}, {self.perm:04o}, {mtime})"


def _parse_perm(value: Any, name: str) -> int:
    """
    Parse a permission value given as an integer or an octal string.
    """
    if isinstance(value, bool):
        raise FstParseError(f"Invalid Perm value for '{name}': {value!r}")
    if isinstance(value, int):
        perm = value
    elif isinstance(value, str):
        try:
            perm = int(value, 8)
        except ValueError as err:
            raise FstParseError(
                f"Invalid Perm value for '{name}': {value!r}"
            ) from err
    else:
        raise FstParseError(f"Invalid Perm value for '{name}': {value!r}")
    if perm < 0 or perm > PERM_MASK:
        raise FstParseError(f"Perm value out of range for '{name}': {perm:o}")
    return perm


def _parse_mtime(value: Any, name: str) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp; naive values are taken to be UTC.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise FstParseError(f"Invalid MTime value for '{name}': {value!r}")
    try:
        # datetime.fromisoformat() only accepts a 'Z' suffix from 3.11
        mtime = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as err:
        raise FstParseError(f"Invalid MTime value for '{name}': {value!r}") from err
    if mtime.tzinfo is None:
        mtime = mtime.replace(tzinfo=timezone.utc)
    return mtime


def _parse_name(value: Any) -> str:
    """
    Validate an entry name: relative, non-empty and not escaping the root.
    """
    if not isinstance(value, str) or not value.strip("/"):
        raise FstParseError(f"Invalid Name value: {value!r}")
    path = PurePosixPath(value)
    if path.is_absolute():
        raise FstParseError(f"Name must be a relative path: {value}")
    if ".." in path.parts:
        raise FstParseError(f"Name must not leave the tree root: {value}")
    return value


def _parse_entry(obj: Any) -> TreeEntry:
    """
    Build a ``TreeEntry`` from one decoded JSON object.
    """
    if not isinstance(obj, dict):
        raise FstParseError(f"Tree entry is not an object: {obj!r}")

    fields: Dict[str, Any] = {}
    for key, value in obj.items():
        lkey = key.lower()
        if lkey not in _VALID_KEYS:
            raise FstParseError(f"Unknown tree entry key: {key}")
        fields[lkey] = value

    if _KEY_NAME not in fields:
        raise FstParseError(f"Tree entry has no Name: {obj!r}")

    name = _parse_name(fields[_KEY_NAME])
    is_dir = name.endswith("/")
    contents = fields.get(_KEY_CONTENTS, "")
    if not isinstance(contents, str):
        raise FstParseError(f"Invalid Contents value for '{name}'")
    if is_dir and contents:
        raise FstParseError(f"Directory '{name}' cannot have Contents")

    if _KEY_PERM in fields:
        perm = _parse_perm(fields[_KEY_PERM], name)
    else:
        perm = DEFAULT_DIR_PERM if is_dir else DEFAULT_FILE_PERM

    return TreeEntry(
        name=name.rstrip("/"),
        perm=perm,
        mtime=_parse_mtime(fields.get(_KEY_MTIME), name),
        contents=contents,
        is_dir=is_dir,
    )


def parse_tree_config(config: Union[str, TextIO]) -> List[TreeEntry]:
    """
    Parse a JSON tree description.

    :param config: The description as a string or a readable text stream.
    :type config: ``Union[str, TextIO]``
    :returns: The described entries in description order.
    :rtype: ``List[TreeEntry]``
    :raises FstParseError: If the description is malformed.
    """
    try:
        if isinstance(config, str):
            data = json.loads(config)
        else:
            data = json.load(config)
    except json.JSONDecodeError as err:
        raise FstParseError(f"Malformed tree description: {err}") from err

    if not isinstance(data, list):
        raise FstParseError("Tree description must be a JSON array")

    entries = [_parse_entry(obj) for obj in data]
    _log_debug_tree("Parsed %d tree entries", len(entries))
    return entries


def _set_mtime(path: str, mtime: datetime):
    """Set both access and modification time of ``path`` to ``mtime``."""
    delta = mtime - datetime(1970, 1, 1, tzinfo=timezone.utc)
    mtime_ns = (
        delta.days * 86_400_000_000_000
        + delta.seconds * 1_000_000_000
        + delta.microseconds * 1_000
    )
    os.utime(path, ns=(mtime_ns, mtime_ns))


def _metadata_order(entries: List[TreeEntry]) -> List[TreeEntry]:
    """
    Return ``entries`` deepest first, later entries first within a depth.
    """
    return sorted(
        reversed(entries),
        key=lambda entry: len(PurePosixPath(entry.name).parts),
        reverse=True,
    )


def tree_create(
    config: Union[str, TextIO], root: Optional[Union[str, Path]] = None
) -> List[TreeEntry]:
    """
    Populate ``root`` from the JSON tree description ``config``.

    Entries are created in description order; missing parent directories
    are created with default permissions. Permissions and modification
    times are applied afterwards, deepest entries first, so that locking
    or populating a directory does not disturb its own metadata or block
    access to entries below it.

    :param config: The description as a string or a readable text stream.
    :type config: ``Union[str, TextIO]``
    :param root: The directory to populate: the current working directory
                 if ``None``.
    :type root: ``Optional[Union[str, Path]]``
    :returns: The entries that were created.
    :rtype: ``List[TreeEntry]``
    :raises FstParseError: If the description is malformed.
    :raises FstSystemError: If creating an entry fails.
    """
    entries = parse_tree_config(config)
    root = os.fspath(root) if root is not None else os.getcwd()
    _log_info("Creating %d tree entries in %s", len(entries), root)

    try:
        for entry in entries:
            path = os.path.join(root, entry.name)
            if entry.is_dir:
                os.makedirs(path, exist_ok=True)
                _log_debug_tree("Created directory '%s'", path)
            else:
                parent = os.path.dirname(path)
                if parent:
                    os.makedirs(parent, exist_ok=True)
                with open(path, "w", encoding="utf8") as fp:
                    fp.write(entry.contents)
                _log_debug_tree("Created file '%s'", path)

        for entry in _metadata_order(entries):
            path = os.path.join(root, entry.name)
            os.chmod(path, entry.perm)
            if entry.mtime is not None:
                _set_mtime(path, entry.mtime)
    except OSError as err:
        raise FstSystemError(f"Failed to create tree in {root}: {err}") from err

    return entries


__all__ = [
    "DEFAULT_DIR_PERM",
    "DEFAULT_FILE_PERM",
    "TreeEntry",
    "parse_tree_config",
    "tree_create",
]
