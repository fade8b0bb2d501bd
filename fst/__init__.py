# Copyright Red Hat
#
# fst/__init__.py - File system test trees package initialisation
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Fst top-level package.
"""
from ._fst import *  # noqa: F401, F403
from ._fst import __all__  # noqa: F401

__version__ = "0.1.0"
