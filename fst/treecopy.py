# Copyright Red Hat
#
# fst/treecopy.py - File system test trees copy support
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Recursive copy of regular files and directories.
"""
from pathlib import Path
from typing import List, Tuple, Union
import logging
import shutil
import stat
import os

from fst import FST_SUBSYSTEM_TREE, PERM_MASK, FstPathError, FstSystemError

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info


def _log_debug_tree(msg, *args, **kwargs):
    """A wrapper for tree subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FST_SUBSYSTEM_TREE}, **kwargs)


#: Mode used for directories while they are being populated
_DIR_WORK_MODE = 0o700


def _raise_walk_error(err: OSError):
    """``os.walk()`` error callback: walk errors are fatal to the copy."""
    raise err


def tree_copy(src: Union[str, Path], dest: Union[str, Path]):
    """
    Copy the content of directory ``src`` into the existing directory
    ``dest``.

    Only directories and regular files are copied: symbolic links, device
    nodes, sockets and FIFOs are skipped. The low nine permission bits of
    each entry are preserved. Reading ``src`` requires read permission on
    every file and read and execute permission on every directory.

    :param src: The directory to copy from.
    :type src: ``Union[str, Path]``
    :param dest: The directory to copy into.
    :type dest: ``Union[str, Path]``
    :raises FstPathError: If ``src`` or ``dest`` is not a directory.
    :raises FstSystemError: If reading ``src`` or writing ``dest`` fails.
    """
    src = os.fspath(src)
    dest = os.fspath(dest)

    if not os.path.isdir(src):
        raise FstPathError(f"Copy source is not a directory: {src}")
    if not os.path.isdir(dest):
        raise FstPathError(f"Copy destination is not a directory: {dest}")

    _log_info("Copying tree %s to %s", src, dest)

    # Directory modes are applied once all content is in place.
    dir_modes: List[Tuple[str, int]] = []
    copied = 0
    try:
        for root, dirs, files in os.walk(src, onerror=_raise_walk_error):
            rel_root = os.path.relpath(root, src)
            dest_root = dest if rel_root == os.curdir else os.path.join(dest, rel_root)
            for name in dirs:
                src_path = os.path.join(root, name)
                dest_path = os.path.join(dest_root, name)
                path_stat = os.lstat(src_path)
                if not stat.S_ISDIR(path_stat.st_mode):
                    # os.walk() reports symlinks to directories in dirs
                    _log_debug_tree("Skipping non-directory '%s'", src_path)
                    continue
                os.mkdir(dest_path, _DIR_WORK_MODE)
                dir_modes.append((dest_path, stat.S_IMODE(path_stat.st_mode)))
            for name in files:
                src_path = os.path.join(root, name)
                dest_path = os.path.join(dest_root, name)
                path_stat = os.lstat(src_path)
                if not stat.S_ISREG(path_stat.st_mode):
                    _log_debug_tree("Skipping non-regular file '%s'", src_path)
                    continue
                shutil.copyfile(src_path, dest_path, follow_symlinks=False)
                os.chmod(dest_path, stat.S_IMODE(path_stat.st_mode) & PERM_MASK)
                copied += 1

        for dest_path, mode in reversed(dir_modes):
            os.chmod(dest_path, mode & PERM_MASK)
    except OSError as err:
        raise FstSystemError(f"Failed to copy tree {src} to {dest}: {err}") from err

    _log_debug_tree(
        "Copied %d files and %d directories from %s", copied, len(dir_modes), src
    )


__all__ = [
    "tree_copy",
]
