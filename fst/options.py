# Copyright Red Hat
#
# fst/options.py - File system test trees options
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Temporary directory options.
"""
from dataclasses import dataclass
from typing import Mapping, Optional
import logging
import os

_log = logging.getLogger(__name__)

_log_debug = _log.debug

#: Environment variable naming the parent directory for temporary trees
ENV_TMPDIR = "FST_TMPDIR"
#: Environment variable overriding the temporary directory name prefix
ENV_PREFIX = "FST_PREFIX"


@dataclass(frozen=True)
class TempDirOptions:
    """
    Temporary directory creation options.
    """

    #: Leading component of each temporary directory name
    prefix: str = "fst-"
    #: Trailing component of each temporary directory name
    suffix: str = ""
    #: Directory in which to create temporary directories: ``None`` uses
    #: the platform scratch location.
    parent: Optional[str] = None

    def __str__(self):
        """
        Return a human readable string representation of this
        ``TempDirOptions`` instance.

        :returns: A human readable string.
        :rtype: ``str``
        """
        return "\n".join(f"{key}={val}" for key, val in self.__dict__.items())

    @classmethod
    def from_environ(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "TempDirOptions":
        """
        Initialise TempDirOptions from the process environment.

        Values that are unset or empty in ``environ`` keep their defaults.

        :param environ: The environment mapping to read, or ``None`` to use
                        ``os.environ``.
        :type environ: ``Optional[Mapping[str, str]]``
        :returns: A new ``TempDirOptions`` instance
        :rtype: ``TempDirOptions``
        """
        environ = os.environ if environ is None else environ
        kwargs = {}
        if environ.get(ENV_TMPDIR):
            kwargs["parent"] = environ[ENV_TMPDIR]
        if environ.get(ENV_PREFIX):
            kwargs["prefix"] = environ[ENV_PREFIX]
        options = cls(**kwargs)
        _log_debug("Initialised TempDirOptions from environment: %s", repr(options))
        return options
