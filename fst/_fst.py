# Copyright Red Hat
#
# fst/_fst.py - File system test trees global definitions
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Global definitions for the top-level fst package.
"""
import logging
import os

_log = logging.getLogger("fst")

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error

# Fst debugging subsystem mask
FST_DEBUG_RANK = 1
FST_DEBUG_TEMPDIR = 2
FST_DEBUG_TREE = 4
FST_DEBUG_ALL = FST_DEBUG_RANK | FST_DEBUG_TEMPDIR | FST_DEBUG_TREE

# Fst debugging subsystem names
FST_SUBSYSTEM_RANK = "fst.rank"
FST_SUBSYSTEM_TEMPDIR = "fst.tempdir"
FST_SUBSYSTEM_TREE = "fst.tree"

_DEBUG_MASK_TO_SUBSYSTEM = {
    FST_DEBUG_RANK: FST_SUBSYSTEM_RANK,
    FST_DEBUG_TEMPDIR: FST_SUBSYSTEM_TEMPDIR,
    FST_DEBUG_TREE: FST_SUBSYSTEM_TREE,
}

# Debug option names accepted by set_debug()
_DEBUG_NAME_TO_MASK = {
    "rank": FST_DEBUG_RANK,
    "tempdir": FST_DEBUG_TEMPDIR,
    "tree": FST_DEBUG_TREE,
    "all": FST_DEBUG_ALL,
}

#: Environment variable holding debug options for ``setup_logging()``
ENV_DEBUG = "FST_DEBUG"

_debug_mask = 0

#: Low nine permission bits (rwxrwxrwx)
PERM_MASK = 0o777


def _mask_subsystems(mask):
    return {name for flag, name in _DEBUG_MASK_TO_SUBSYSTEM.items() if mask & flag}


class SubsystemFilter(logging.Filter):
    """
    Drops DEBUG records logged for a subsystem that is not enabled in the
    debug mask. Records at other levels, and DEBUG records without a
    'subsystem' attribute, always pass.

    A filter only acts on the handler it is added to. ``setup_logging()``
    adds one to the handler it installs; ``set_debug_mask()`` updates every
    filter found on a handler of the ``fst`` logger.
    """

    def __init__(self, name=""):
        super().__init__(name)
        self.enabled_subsystems = _mask_subsystems(_debug_mask)

    def filter(self, record):
        if record.levelno != logging.DEBUG:
            return True
        subsystem = getattr(record, "subsystem", None)
        return subsystem is None or subsystem in self.enabled_subsystems

    def set_debug_subsystems(self, subsystems):
        """Sets the collection of subsystems to allow."""
        self.enabled_subsystems = set(subsystems)


def _handler_filters():
    for handler in _log.handlers:
        for filt in handler.filters:
            if isinstance(filt, SubsystemFilter):
                yield filt


def get_debug_mask():
    """
    Return the current debug mask for the ``fst`` package.

    :returns: The current debug mask value
    :rtype: int
    """
    return _debug_mask


def set_debug_mask(mask):
    """
    Set the debug mask for the ``fst`` package and update the
    ``SubsystemFilter`` on each handler of the ``fst`` logger.

    :param mask: the logical OR of the ``FST_DEBUG_*``
                 values to log.
    :rtype: None
    :raises ValueError: If ``mask`` has bits outside ``FST_DEBUG_ALL``.
    """
    # pylint: disable=global-statement
    global _debug_mask

    if mask < 0 or mask > FST_DEBUG_ALL:
        raise ValueError(f"Invalid fst debug mask: {mask}")

    _debug_mask = mask
    subsystems = _mask_subsystems(mask)
    for filt in _handler_filters():
        filt.set_debug_subsystems(subsystems)


def set_debug(debug_arg):
    """
    Set the debug mask from a comma separated list of subsystem names
    ("rank", "tempdir", "tree" or "all").

    :raises ValueError: For an unknown name.
    """
    mask = 0
    for name in debug_arg.split(","):
        name = name.strip()
        if name not in _DEBUG_NAME_TO_MASK:
            raise ValueError(f"Unknown debug option: {name}")
        mask |= _DEBUG_NAME_TO_MASK[name]
    set_debug_mask(mask)


def setup_logging(level=logging.WARNING, handler=None, debug=None):
    """
    Attach a handler with a ``SubsystemFilter`` to the ``fst`` logger.

    :param level: The level for the ``fst`` logger and the handler.
    :param handler: The handler to install: a ``logging.StreamHandler``
                    writing to ``stderr`` if ``None``.
    :param debug: Debug options as accepted by ``set_debug()``. If
                  ``None`` the value of ``FST_DEBUG`` is used, if set.
                  Any debug option lowers ``level`` to ``DEBUG``.
    :returns: The installed handler, for later removal.
    :rtype: ``logging.Handler``
    :raises ValueError: For an unknown debug option.
    """
    if debug is None:
        debug = os.environ.get(ENV_DEBUG, "")
    if debug:
        set_debug(debug)
        level = logging.DEBUG

    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
    handler.setLevel(level)
    handler.addFilter(SubsystemFilter("fst"))

    _log.setLevel(level)
    _log.addHandler(handler)
    return handler


#
# Fst exception types
#


class FstError(Exception):
    """
    Base class for fst errors.
    """


class FstSystemError(FstError):
    """
    An error when calling the operating system.
    """


class FstPathError(FstError):
    """
    An invalid path was supplied, for example a clone source that does
    not exist or is not a directory.
    """


class FstParseError(FstError):
    """
    A declarative tree description could not be parsed.
    """


class FstBusyError(FstError):
    """
    A working directory change is already active for this process.
    """


class FstCompareError(FstError):
    """
    A file comparison was aborted.
    """


class FstTeardownError(FstError):
    """
    A temporary directory could not be removed. This leaves the test
    environment in an unknown state and should be treated as fatal.
    """


__all__ = [
    # Debug mask and subsystems
    "FST_DEBUG_RANK",
    "FST_DEBUG_TEMPDIR",
    "FST_DEBUG_TREE",
    "FST_DEBUG_ALL",
    "FST_SUBSYSTEM_RANK",
    "FST_SUBSYSTEM_TEMPDIR",
    "FST_SUBSYSTEM_TREE",
    "PERM_MASK",
    "SubsystemFilter",
    "ENV_DEBUG",
    "get_debug_mask",
    "set_debug_mask",
    "set_debug",
    "setup_logging",
    # Exceptions
    "FstError",
    "FstSystemError",
    "FstPathError",
    "FstParseError",
    "FstBusyError",
    "FstCompareError",
    "FstTeardownError",
]
