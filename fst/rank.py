# Copyright Red Hat
#
# fst/rank.py - File system test trees rank functions
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Rank functions for ordering and comparing file system entries.

A rank function takes two ``FileInfoPath`` objects and returns ``True`` if
and only if the left entry is strictly less than the right entry according
to the function's criterion. Equal entries, and entries the criterion
cannot order, both rank as ``False``.

Rank functions are composed with ``less()``, which applies them in order
and stops at the first one that returns ``True``::

    less(left, right, by_dir, by_name)

is ``True`` if ``left`` is a directory and ``right`` is not, or if
``left`` has the smaller name. ``less()`` only looks in one direction:
a file "aaa" is ``less`` than a directory "zzz" here, and the directory
is also ``less`` than the file. To sort entries use ``rank_key()``,
which lets each rank decide in both directions before the next one is
consulted, so ``rank_key(by_dir, by_name)`` puts every directory before
every file.
"""
from functools import cmp_to_key
from io import BytesIO
from typing import Any, BinaryIO, Callable, NoReturn, Optional
import logging

from fst import FST_SUBSYSTEM_RANK, FstCompareError

from .fileinfo import FileInfoPath

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_warn = _log.warning


def _log_debug_rank(msg, *args, **kwargs):
    """A wrapper for rank subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FST_SUBSYSTEM_RANK}, **kwargs)


#: Signature of a rank function.
FileRank = Callable[[FileInfoPath, FileInfoPath], bool]

#: Modification times closer than this (in nanoseconds) are not ordered.
TIME_TOLERANCE_NS = 10_000


def by_name(left: FileInfoPath, right: FileInfoPath) -> bool:
    """
    Rank entries by base name. This is the basic rank for comparing
    directories and should be the first rank in most chains.
    """
    return left.name < right.name


def by_dir(left: FileInfoPath, right: FileInfoPath) -> bool:
    """
    Rank directories before anything that is not a directory.
    """
    return left.is_dir and not right.is_dir


def by_size(left: FileInfoPath, right: FileInfoPath) -> bool:
    """
    Rank regular files by size. Returns ``False`` if either entry is not
    a regular file.
    """
    return left.is_regular and right.is_regular and left.size < right.size


def by_time(left: FileInfoPath, right: FileInfoPath) -> bool:
    """
    Rank entries by modification time, allowing ``TIME_TOLERANCE_NS`` of
    slack for file system timestamp granularity.
    """
    return left.mtime_ns < right.mtime_ns - TIME_TOLERANCE_NS


def by_perm(left: FileInfoPath, right: FileInfoPath) -> bool:
    """
    Rank entries by their low nine (rwxrwxrwx) permission bits.
    """
    return left.perm < right.perm


def _read_byte(stream: BinaryIO, path) -> Optional[int]:
    """
    Read a single byte from ``stream``.

    :returns: The byte value, or ``None`` at end of file or on a read error.
    """
    try:
        data = stream.read(1)
    except OSError as err:
        _log_warn("Error reading '%s' during content comparison: %s", path, err)
        return None
    return data[0] if data else None


class ByContent:
    """
    Rank regular files by content.

    Content is compared byte by byte, without first comparing sizes: a
    file containing "aaa" ranks below one containing "ab" even though it
    is larger. To rank by size first put ``by_size`` earlier in the chain.

    Errors opening either file are passed to the ``fail`` callable given
    at construction, normally the ``fail`` method of the running
    ``unittest.TestCase``. The comparison never continues after a failure:
    if ``fail`` returns, ``FstCompareError`` is raised.
    Directories compare as empty content.
    """

    def __init__(self, fail: Callable[[str], Any]):
        """
        Initialise a new ``ByContent`` rank function.

        :param fail: A callable accepting an error message that reports a
                     test failure.
        :type fail: ``Callable[[str], Any]``
        """
        self.fail = fail

    def _abort(self, err: OSError) -> NoReturn:
        msg = f"Cannot compare file content: {err}"
        self.fail(msg)
        raise FstCompareError(msg) from err

    def _open(self, entry: FileInfoPath) -> BinaryIO:
        # Directories read as immediately exhausted streams.
        if entry.is_dir:
            return BytesIO(b"")
        try:
            return open(entry.path, "rb")  # pylint: disable=consider-using-with
        except OSError as err:
            self._abort(err)

    def __call__(self, left: FileInfoPath, right: FileInfoPath) -> bool:
        _log_debug_rank("Comparing content of %s and %s", left.path, right.path)
        with self._open(left) as left_f:
            with self._open(right) as right_f:
                while True:
                    r_byte = _read_byte(right_f, right.path)
                    if r_byte is None:
                        return False

                    l_byte = _read_byte(left_f, left.path)
                    if l_byte is None:
                        return True

                    if l_byte == r_byte:
                        continue

                    return l_byte < r_byte

    def __repr__(self):
        return f"ByContent({self.fail!r})"


def less(left: FileInfoPath, right: FileInfoPath, *ranks: FileRank) -> bool:
    """
    Apply ``ranks`` in order to the pair ``left``, ``right``.

    :param left: The left hand entry.
    :type left: ``FileInfoPath``
    :param right: The right hand entry.
    :type right: ``FileInfoPath``
    :param ranks: Rank functions to apply.
    :returns: ``True`` as soon as any rank returns ``True``, or ``False``
              if none do (including for an empty chain).
    :rtype: ``bool``
    """
    for rank in ranks:
        if rank(left, right):
            return True
    return False


def rank_key(*ranks: FileRank):
    """
    Return a sort key function ordering ``FileInfoPath`` objects by the
    composite rank ``ranks``, for use with ``sorted()`` and ``list.sort()``.

    Unlike ``less()``, each rank is tried in both directions before moving
    on to the next, so a later rank only orders entries that every
    earlier rank left tied. ``rank_key(by_dir, by_name)`` therefore sorts
    all directories before all files, each group ordered by name.
    Entries that no rank orders compare equal and keep their relative
    order.
    """

    def _compare(left: FileInfoPath, right: FileInfoPath) -> int:
        for rank in ranks:
            if rank(left, right):
                return -1
            if rank(right, left):
                return 1
        return 0

    return cmp_to_key(_compare)


__all__ = [
    "FileRank",
    "TIME_TOLERANCE_NS",
    "by_name",
    "by_dir",
    "by_size",
    "by_time",
    "by_perm",
    "ByContent",
    "less",
    "rank_key",
]
