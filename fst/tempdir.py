# Copyright Red Hat
#
# fst/tempdir.py - File system test trees temporary directories
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Temporary directory lifecycle management.

Each ``temp_*`` function returns a ``TempDirHandle``: a ``(path, cleanup)``
pair that owns one temporary directory. Calling ``cleanup()`` removes the
directory and everything below it, even if test code has made parts of the
tree read-only. Handles may also be used as context managers::

    with temp_clone_dir("tests/data") as path:
        ...

If any step of a ``temp_*`` function fails, everything it already created
is removed again before the error is raised.

The ``*_chdir`` variants change the working directory of the process into
the new directory and return the previous working directory as ``path``.
Their cleanup changes back before removing the directory. The working
directory is process-wide state: only one such handle may be active at a
time and requesting a second raises ``FstBusyError``.
"""
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, TextIO, Union
import tempfile
import logging
import stat
import os

from fst import (
    FST_SUBSYSTEM_TEMPDIR,
    FstBusyError,
    FstSystemError,
    FstTeardownError,
)

from .options import TempDirOptions
from .treecopy import tree_copy
from .treecreate import tree_create

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_tempdir(msg, *args, **kwargs):
    """A wrapper for tempdir subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": FST_SUBSYSTEM_TEMPDIR}, **kwargs)


#: Mode restored on every directory before removal
_REMOVE_DIR_MODE = stat.S_IRWXU

#: True while a working directory handle is active in this process
_chdir_active = False


class TempDirHandle(NamedTuple):
    """
    Ownership of a temporary directory: a path and the action that
    removes it.
    """

    #: The temporary directory, or for ``*_chdir`` handles the previous
    #: working directory.
    path: str
    #: Remove the temporary directory (restoring the working directory
    #: first for ``*_chdir`` handles).
    cleanup: Callable[[], None]

    def __enter__(self) -> str:
        return self.path

    def __exit__(self, exc_type, exc_value, traceback):
        self.cleanup()


def _raise_walk_error(err: OSError):
    """``os.walk()`` error callback: walk errors are fatal to teardown."""
    raise err


def remove_tree(root: Union[str, Path]):
    """
    Remove ``root`` and everything below it regardless of directory
    permissions.

    The tree is walked top-down. Each directory is given owner
    read/write/execute permission before its content is listed and is
    recorded; everything else is removed as it is found. The recorded
    directories are then removed in reverse order, so every directory is
    empty by the time it is removed.

    :param root: The directory tree to remove.
    :type root: ``Union[str, Path]``
    :raises FstTeardownError: If restoring permissions or removing an entry
                              fails.
    """
    root = os.fspath(root)
    dirs: List[str] = []

    try:
        os.chmod(root, _REMOVE_DIR_MODE)
        dirs.append(root)
        for parent, subdirs, files in os.walk(root, onerror=_raise_walk_error):
            descend = []
            for name in subdirs:
                path = os.path.join(parent, name)
                if os.path.islink(path):
                    # Remove the link itself and drop it from the walk.
                    os.remove(path)
                    continue
                # Must precede os.walk() descending into this directory.
                os.chmod(path, _REMOVE_DIR_MODE)
                dirs.append(path)
                descend.append(name)
            subdirs[:] = descend
            for name in files:
                os.remove(os.path.join(parent, name))
    except OSError as err:
        _log_error("Failed to clear temporary directory %s: %s", root, err)
        raise FstTeardownError(
            f"Failed to clear temporary directory {root}: {err}"
        ) from err

    for path in reversed(dirs):
        try:
            os.rmdir(path)
        except OSError as err:
            _log_error("Failed to remove temporary directory %s: %s", path, err)
            raise FstTeardownError(
                f"Failed to remove temporary directory {path}: {err}"
            ) from err

    _log_debug_tempdir("Removed %d directories below %s", len(dirs), root)


def _make_cleanup(root: str) -> Callable[[], None]:
    """
    Return a cleanup action that removes ``root`` once.
    """
    done = False

    def _cleanup():
        nonlocal done
        if done:
            _log_debug_tempdir("Temporary directory %s already removed", root)
            return
        done = True
        _log_debug_tempdir("Removing temporary directory %s", root)
        remove_tree(root)

    return _cleanup


def temp_init_dir(options: Optional[TempDirOptions] = None) -> TempDirHandle:
    """
    Create an empty temporary directory.

    :param options: Options controlling the directory name and location.
    :type options: ``Optional[TempDirOptions]``
    :returns: A handle holding the new directory path and its cleanup.
    :rtype: ``TempDirHandle``
    :raises FstSystemError: If the directory cannot be created.
    """
    options = options or TempDirOptions()
    try:
        root = tempfile.mkdtemp(
            prefix=options.prefix, suffix=options.suffix, dir=options.parent
        )
    except OSError as err:
        raise FstSystemError(f"Failed to create temporary directory: {err}") from err

    _log_debug_tempdir("Created temporary directory %s", root)
    return TempDirHandle(root, _make_cleanup(root))


def temp_clone_dir(
    src: Union[str, Path], options: Optional[TempDirOptions] = None
) -> TempDirHandle:
    """
    Create a temporary directory holding a copy of ``src``.

    Only directories and regular files are copied, keeping their low nine
    permission bits. If a file in ``src`` is not readable, or a directory
    not readable and searchable, the clone fails.

    :param src: The directory to copy.
    :type src: ``Union[str, Path]``
    :param options: Options controlling the directory name and location.
    :type options: ``Optional[TempDirOptions]``
    :returns: A handle holding the new directory path and its cleanup.
    :rtype: ``TempDirHandle``
    :raises FstPathError: If ``src`` is not a directory.
    :raises FstSystemError: If creating or copying fails.
    """
    root, cleanup = temp_init_dir(options)
    try:
        tree_copy(src, root)
    except BaseException:
        cleanup()
        raise
    return TempDirHandle(root, cleanup)


def _chdir_handle(handle: TempDirHandle) -> TempDirHandle:
    """
    Change into ``handle.path`` and return a handle for the previous
    working directory whose cleanup changes back before calling
    ``handle.cleanup``.
    """
    root, cleanup = handle
    try:
        old_wd = os.getcwd()
        os.chdir(root)
    except OSError as err:
        _release_chdir()
        cleanup()
        raise FstSystemError(f"Failed to change directory to {root}: {err}") from err

    _log_debug_tempdir("Changed directory from %s to %s", old_wd, root)
    done = False

    def _chdir_cleanup():
        nonlocal done
        if done:
            _log_debug_tempdir("Working directory %s already restored", old_wd)
            return
        done = True
        try:
            os.chdir(old_wd)
        except OSError as err:
            _log_error("Failed to change directory back to %s: %s", old_wd, err)
            raise FstSystemError(
                f"Failed to change directory back to {old_wd}: {err}"
            ) from err
        finally:
            _release_chdir()
            cleanup()

    return TempDirHandle(old_wd, _chdir_cleanup)


def _claim_chdir():
    """
    Mark a working directory handle as active.

    :raises FstBusyError: If a handle is already active.
    """
    # pylint: disable=global-statement
    global _chdir_active
    if _chdir_active:
        raise FstBusyError("A temporary working directory is already active")
    _chdir_active = True


def _release_chdir():
    # pylint: disable=global-statement
    global _chdir_active
    _chdir_active = False


def temp_init_chdir(options: Optional[TempDirOptions] = None) -> TempDirHandle:
    """
    Create an empty temporary directory and change into it.

    :param options: Options controlling the directory name and location.
    :type options: ``Optional[TempDirOptions]``
    :returns: A handle holding the previous working directory and a cleanup
              that changes back to it and removes the temporary directory.
    :rtype: ``TempDirHandle``
    :raises FstBusyError: If a working directory handle is already active.
    :raises FstSystemError: If creating or changing directory fails.
    """
    _claim_chdir()
    try:
        handle = temp_init_dir(options)
    except BaseException:
        _release_chdir()
        raise
    return _chdir_handle(handle)


def temp_clone_chdir(
    src: Union[str, Path], options: Optional[TempDirOptions] = None
) -> TempDirHandle:
    """
    Clone ``src`` into a temporary directory as ``temp_clone_dir()`` does
    and change into it.

    :param src: The directory to copy.
    :type src: ``Union[str, Path]``
    :param options: Options controlling the directory name and location.
    :type options: ``Optional[TempDirOptions]``
    :returns: A handle holding the previous working directory and a cleanup
              that changes back to it and removes the temporary directory.
    :rtype: ``TempDirHandle``
    :raises FstBusyError: If a working directory handle is already active.
    :raises FstPathError: If ``src`` is not a directory.
    :raises FstSystemError: If creating, copying or changing directory fails.
    """
    _claim_chdir()
    try:
        handle = temp_clone_dir(src, options)
    except BaseException:
        _release_chdir()
        raise
    return _chdir_handle(handle)


def temp_create_chdir(
    config: Union[str, TextIO], options: Optional[TempDirOptions] = None
) -> TempDirHandle:
    """
    Create a temporary directory, change into it and populate it from the
    JSON tree description ``config`` as ``tree_create()`` does.

    :param config: The tree description as a string or text stream.
    :type config: ``Union[str, TextIO]``
    :param options: Options controlling the directory name and location.
    :type options: ``Optional[TempDirOptions]``
    :returns: A handle holding the previous working directory and a cleanup
              that changes back to it and removes the temporary directory.
    :rtype: ``TempDirHandle``
    :raises FstBusyError: If a working directory handle is already active.
    :raises FstParseError: If ``config`` is malformed.
    :raises FstSystemError: If creating the directory or tree fails.
    """
    old_wd, cleanup = temp_init_chdir(options)
    try:
        tree_create(config)
    except BaseException:
        cleanup()
        raise
    return TempDirHandle(old_wd, cleanup)


__all__ = [
    "TempDirHandle",
    "remove_tree",
    "temp_init_dir",
    "temp_init_chdir",
    "temp_clone_dir",
    "temp_clone_chdir",
    "temp_create_chdir",
]
