# Copyright Red Hat
#
# fst/treediff.py - File system test trees comparison
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Compare two directory trees using rank functions.
"""
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union
import logging
import os

from fst import FST_SUBSYSTEM_TREE, FstPathError, FstSystemError

from .fileinfo import FileInfoPath
from .rank import FileRank, by_dir, by_name, by_perm, by_size, less, rank_key

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info


def _log_debug_tree(msg, *args, **kwargs):
    """A wrapper for tree subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FST_SUBSYSTEM_TREE}, **kwargs)


#: Ranks applied by ``tree_diff()`` when none are given.
DEFAULT_RANKS: Tuple[FileRank, ...] = (by_dir, by_name, by_size, by_perm)


def _raise_walk_error(err: OSError):
    raise err


def collect_file_info(root: Union[str, Path]) -> List[FileInfoPath]:
    """
    Return a ``FileInfoPath`` for every entry below ``root``.

    ``root`` itself is not included. Each entry's ``rel_path`` is relative
    to ``root`` and the list is ordered by ``rel_path``.

    :param root: The directory to walk.
    :type root: ``Union[str, Path]``
    :returns: The entries found below ``root``.
    :rtype: ``List[FileInfoPath]``
    :raises FstPathError: If ``root`` is not a directory.
    :raises FstSystemError: If a directory cannot be read.
    """
    root = os.fspath(root)
    if not os.path.isdir(root):
        raise FstPathError(f"Not a directory: {root}")

    entries = []
    try:
        for parent, dirs, files in os.walk(root, onerror=_raise_walk_error):
            for name in dirs + files:
                path = os.path.join(parent, name)
                entries.append(FileInfoPath(path, os.lstat(path), root=root))
    except OSError as err:
        raise FstSystemError(f"Failed to walk tree {root}: {err}") from err

    entries.sort(key=lambda entry: entry.rel_path.parts)
    _log_debug_tree("Collected %d entries below %s", len(entries), root)
    return entries


def sort_file_info(
    entries: Iterable[FileInfoPath], *ranks: FileRank
) -> List[FileInfoPath]:
    """
    Return ``entries`` as a new list sorted by the composite rank ``ranks``.
    The sort is stable: entries ranked equal keep their order.
    """
    return sorted(entries, key=rank_key(*ranks))


class TreeDiffResult:
    """
    The differences found between two directory trees.
    """

    def __init__(
        self,
        left_root: str,
        right_root: str,
        only_left: List[FileInfoPath],
        only_right: List[FileInfoPath],
        differing: List[Tuple[FileInfoPath, FileInfoPath]],
    ):
        #: The left hand tree root
        self.left_root = left_root
        #: The right hand tree root
        self.right_root = right_root
        #: Entries present only in the left hand tree
        self.only_left = only_left
        #: Entries present only in the right hand tree
        self.only_right = only_right
        #: Pairs of entries at the same path that rank differently
        self.differing = differing

    def __bool__(self):
        return bool(self.only_left or self.only_right or self.differing)

    def __len__(self):
        return len(self.only_left) + len(self.only_right) + len(self.differing)

    def __str__(self):
        lines = [f"Only in {self.left_root}: {e.rel_path}" for e in self.only_left]
        lines += [f"Only in {self.right_root}: {e.rel_path}" for e in self.only_right]
        lines += [f"Differs: {left.rel_path}" for left, _ in self.differing]
        return "\n".join(lines)

    def __repr__(self):
        return (
            f"TreeDiffResult(only_left={len(self.only_left)}, "
            f"only_right={len(self.only_right)}, "
            f"differing={len(self.differing)})"
        )

    @property
    def paths(self) -> List[str]:
        """
        The relative paths of all differences, sorted.
        """
        paths = {str(e.rel_path) for e in self.only_left + self.only_right}
        paths.update(str(left.rel_path) for left, _ in self.differing)
        return sorted(paths)


def tree_diff(
    left_root: Union[str, Path], right_root: Union[str, Path], *ranks: FileRank
) -> TreeDiffResult:
    """
    Compare the trees below ``left_root`` and ``right_root``.

    Entries are matched by their path relative to each root. Entries with
    no match are reported as present in one tree only; a matched pair
    differs if either entry ranks below the other under ``ranks``. When no
    ranks are given ``DEFAULT_RANKS`` is used.

    :param left_root: The left hand tree.
    :type left_root: ``Union[str, Path]``
    :param right_root: The right hand tree.
    :type right_root: ``Union[str, Path]``
    :param ranks: Rank functions applied to matched pairs.
    :returns: The differences between the two trees.
    :rtype: ``TreeDiffResult``
    """
    ranks = ranks or DEFAULT_RANKS
    left_root = os.fspath(left_root)
    right_root = os.fspath(right_root)

    left: Dict[Path, FileInfoPath] = {
        e.rel_path: e for e in collect_file_info(left_root)
    }
    right: Dict[Path, FileInfoPath] = {
        e.rel_path: e for e in collect_file_info(right_root)
    }

    only_left = [e for path, e in left.items() if path not in right]
    only_right = [e for path, e in right.items() if path not in left]
    differing = []
    for path, left_entry in left.items():
        right_entry = right.get(path)
        if right_entry is None:
            continue
        if less(left_entry, right_entry, *ranks) or less(
            right_entry, left_entry, *ranks
        ):
            differing.append((left_entry, right_entry))

    result = TreeDiffResult(left_root, right_root, only_left, only_right, differing)
    for line in str(result).splitlines():
        _log_info("%s", line)
    _log_debug_tree("Compared %s and %s: %r", left_root, right_root, result)
    return result


__all__ = [
    "DEFAULT_RANKS",
    "TreeDiffResult",
    "collect_file_info",
    "sort_file_info",
    "tree_diff",
]
