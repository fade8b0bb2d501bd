# Copyright Red Hat
#
# fst/fileinfo.py - File system test trees entry descriptor
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File system entry descriptors used by rank functions and tree walks.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union
import stat
import os

from fst import PERM_MASK, FstPathError


class FileInfoPath:
    """
    Read-only view of a single file system entry, taken with ``lstat()``.
    """

    def __init__(
        self,
        path: Union[str, Path],
        stat_info: os.stat_result,
        root: Optional[Union[str, Path]] = None,
    ):
        """
        Initialise a new ``FileInfoPath`` object.

        :param path: The full path of the entry this ``FileInfoPath``
                     represents.
        :type path: ``Union[str, Path]``
        :param stat_info: An ``os.stat_result`` for ``path``.
        :type stat_info: ``os.stat_result``
        :param root: An optional walk root: ``rel_path`` is ``path`` relative
                     to ``root``, or ``path`` unchanged if not given.
        :type root: ``Optional[Union[str, Path]]``
        """
        #: The full path to this entry
        self.full_path: Path = Path(path)
        #: The path relative to the walk root
        self.rel_path: Path = (
            self.full_path.relative_to(root) if root is not None else self.full_path
        )
        #: The base name of this entry
        self.name: str = self.full_path.name
        #: An ``os.stat_result`` for this path
        self.stat: os.stat_result = stat_info
        #: File mode returned by ``lstat()``
        self.mode: int = stat_info.st_mode
        #: File size returned by ``lstat()``
        self.size: int = stat_info.st_size
        # stat_result objects built from a 10-tuple have no st_mtime_ns
        mtime_ns = getattr(stat_info, "st_mtime_ns", None)
        if mtime_ns is None:
            mtime_ns = int(stat_info.st_mtime * 1_000_000_000)
        #: Modification time in integer nanoseconds
        self.mtime_ns: int = mtime_ns

    @classmethod
    def from_path(
        cls, path: Union[str, Path], root: Optional[Union[str, Path]] = None
    ) -> "FileInfoPath":
        """
        Build a ``FileInfoPath`` by calling ``os.lstat()`` on ``path``.

        :param path: The path to examine.
        :type path: ``Union[str, Path]``
        :param root: An optional walk root for computing ``rel_path``.
        :type root: ``Optional[Union[str, Path]]``
        :returns: A new ``FileInfoPath`` for ``path``.
        :rtype: ``FileInfoPath``
        :raises FstPathError: If ``path`` does not exist.
        """
        try:
            stat_info = os.lstat(path)
        except FileNotFoundError as err:
            raise FstPathError(f"No such file or directory: {path}") from err
        return cls(path, stat_info, root=root)

    def __str__(self):
        indent = 4 * " "
        return (
            f"{indent}path: {self.rel_path}\n"
            f"{indent}type: {self.type_desc}\n"
            f"{indent}mode: {self.perm:04o}\n"
            f"{indent}size: {self.size}\n"
            f"{indent}mtime: {self.mtime.isoformat()}"
        )

    def __repr__(self):
        return f"FileInfoPath('{self.full_path}', mode={self.mode:o}, size={self.size})"

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert this ``FileInfoPath`` object into a dictionary representation
        suitable for encoding as JSON.

        :returns: A dictionary mapping this instance's keys to values.
        :rtype: ``Dict[str, Any]``
        """
        return {
            "path": str(self.rel_path),
            "full_path": str(self.full_path),
            "name": self.name,
            "mode": self.mode,
            "perm": self.perm,
            "size": self.size,
            "mtime_ns": self.mtime_ns,
            "type": self.type_desc,
        }

    @property
    def path(self) -> Path:
        """
        The full path of this entry (alias for ``full_path``).
        """
        return self.full_path

    @property
    def mtime(self) -> datetime:
        """
        The modification time of this entry as an aware UTC ``datetime``.
        Sub-microsecond precision is available via ``mtime_ns``.
        """
        return datetime.fromtimestamp(self.mtime_ns / 1_000_000_000, tz=timezone.utc)

    @property
    def perm(self) -> int:
        """
        The low nine (rwxrwxrwx) permission bits of this entry.
        """
        return stat.S_IMODE(self.mode) & PERM_MASK

    @property
    def is_dir(self) -> bool:
        """
        True if this ``FileInfoPath`` is a directory.
        """
        return stat.S_ISDIR(self.mode)

    @property
    def is_regular(self) -> bool:
        """
        True if this ``FileInfoPath`` is a regular file.
        """
        return stat.S_ISREG(self.mode)

    @property
    def is_symlink(self) -> bool:
        """
        True if this ``FileInfoPath`` is a symbolic link.
        """
        return stat.S_ISLNK(self.mode)

    @property
    def type_desc(self) -> str:
        """
        Return a string description of the entry type.

        :returns: "file", "directory", "symbolic link" or "other".
        :rtype: ``str``
        """
        if self.is_regular:
            return "file"
        if self.is_dir:
            return "directory"
        if self.is_symlink:
            return "symbolic link"
        return "other"
