# Copyright Red Hat
#
# tests/test_tempdir.py - Temporary directory lifecycle tests.
#
# This file is part of the fst project.
#
# SPDX-License-Identifier: Apache-2.0
import unittest
from unittest.mock import patch
import tempfile
import stat
import io
import os

from fst import (
    FstBusyError,
    FstParseError,
    FstPathError,
    FstSystemError,
    FstTeardownError,
)
from fst.options import TempDirOptions
from fst.tempdir import (
    TempDirHandle,
    remove_tree,
    temp_clone_chdir,
    temp_clone_dir,
    temp_create_chdir,
    temp_init_chdir,
    temp_init_dir,
)

from ._util import write_file


def _real(path):
    return os.path.realpath(path)


class TempDirTestBase(unittest.TestCase):
    def setUp(self):
        self.cwd = os.getcwd()
        self.parent = tempfile.mkdtemp()
        self.addCleanup(remove_tree, self.parent)
        self.addCleanup(os.chdir, self.cwd)
        self.options = TempDirOptions(parent=self.parent)

    def assertParentEmpty(self):
        self.assertEqual(os.listdir(self.parent), [])


class TestRemoveTree(TempDirTestBase):
    def test_remove_tree_read_only(self):
        root = tempfile.mkdtemp(dir=self.parent)
        os.makedirs(os.path.join(root, "a", "b", "c"))
        write_file(os.path.join(root, "a", "b", "c", "f"), "x")
        write_file(os.path.join(root, "a", "g"), "y")
        os.chmod(os.path.join(root, "a", "b", "c"), 0o500)
        os.chmod(os.path.join(root, "a", "b"), 0o000)
        os.chmod(os.path.join(root, "a"), 0o444)

        remove_tree(root)
        self.assertFalse(os.path.lexists(root))

    def test_remove_tree_symlinks(self):
        root = tempfile.mkdtemp(dir=self.parent)
        outside = tempfile.mkdtemp(dir=self.parent)
        write_file(os.path.join(outside, "keep"), "x")
        os.symlink(outside, os.path.join(root, "dirlink"))
        os.symlink("missing", os.path.join(root, "dangling"))

        remove_tree(root)
        self.assertFalse(os.path.lexists(root))
        self.assertTrue(os.path.exists(os.path.join(outside, "keep")))

    def test_remove_tree_nested_dir_symlink(self):
        root = tempfile.mkdtemp(dir=self.parent)
        outside = tempfile.mkdtemp(dir=self.parent)
        os.makedirs(os.path.join(root, "a", "b"))
        os.symlink(outside, os.path.join(root, "a", "link"))
        os.symlink(os.path.join(root, "a", "b"), os.path.join(root, "a", "b", "up"))

        remove_tree(root)
        self.assertFalse(os.path.lexists(root))
        self.assertTrue(os.path.isdir(outside))

    def test_remove_tree_missing(self):
        with self.assertRaises(FstTeardownError):
            remove_tree(os.path.join(self.parent, "missing"))

    def test_remove_tree_remove_error(self):
        root = tempfile.mkdtemp(dir=self.parent)
        write_file(os.path.join(root, "f"), "x")
        with patch("fst.tempdir.os.remove", side_effect=PermissionError("denied")):
            with self.assertRaises(FstTeardownError):
                remove_tree(root)

    def test_remove_tree_rmdir_error(self):
        root = tempfile.mkdtemp(dir=self.parent)
        with patch("fst.tempdir.os.rmdir", side_effect=OSError("busy")):
            with self.assertRaises(FstTeardownError):
                remove_tree(root)

    def test_remove_tree_chmod_error(self):
        root = tempfile.mkdtemp(dir=self.parent)
        with patch("fst.tempdir.os.chmod", side_effect=PermissionError("denied")):
            with self.assertRaises(FstTeardownError):
                remove_tree(root)


class TestTempInitDir(TempDirTestBase):
    def test_temp_init_dir(self):
        path, cleanup = temp_init_dir(self.options)
        self.assertTrue(os.path.isdir(path))
        self.assertEqual(os.path.dirname(path), self.parent)
        self.assertTrue(os.path.basename(path).startswith("fst-"))
        self.assertEqual(os.getcwd(), self.cwd)
        cleanup()
        self.assertFalse(os.path.exists(path))

    def test_temp_init_dir_default_location(self):
        handle = temp_init_dir()
        self.assertIsInstance(handle, TempDirHandle)
        self.assertEqual(
            _real(os.path.dirname(handle.path)), _real(tempfile.gettempdir())
        )
        handle.cleanup()
        self.assertFalse(os.path.exists(handle.path))

    def test_temp_init_dir_context_manager(self):
        with temp_init_dir(self.options) as path:
            write_file(os.path.join(path, "f"), "x")
            self.assertTrue(os.path.isdir(path))
        self.assertFalse(os.path.exists(path))

    def test_temp_init_dir_cleanup_dir_symlink(self):
        outside = tempfile.mkdtemp(dir=self.parent)
        path, cleanup = temp_init_dir(self.options)
        os.symlink(outside, os.path.join(path, "dirlink"))
        cleanup()
        self.assertFalse(os.path.lexists(path))
        self.assertTrue(os.path.isdir(outside))

    def test_temp_init_dir_cleanup_twice(self):
        path, cleanup = temp_init_dir(self.options)
        cleanup()
        cleanup()
        self.assertFalse(os.path.exists(path))

    def test_temp_init_dir_read_only_tree(self):
        path, cleanup = temp_init_dir(self.options)
        nested = os.path.join(path, "a", "b")
        os.makedirs(nested)
        write_file(os.path.join(nested, "f"), "x")
        os.chmod(nested, 0o500)
        os.chmod(os.path.join(path, "a"), 0o500)
        os.chmod(path, 0o500)
        cleanup()
        self.assertFalse(os.path.exists(path))

    def test_temp_init_dir_bad_parent(self):
        options = TempDirOptions(parent=os.path.join(self.parent, "missing"))
        with self.assertRaises(FstSystemError):
            temp_init_dir(options)
        self.assertParentEmpty()


class TestTempCloneDir(TempDirTestBase):
    def setUp(self):
        super().setUp()
        self.src = tempfile.mkdtemp()
        self.addCleanup(remove_tree, self.src)
        os.mkdir(os.path.join(self.src, "sub"))
        write_file(os.path.join(self.src, "sub", "f.txt"), "content")
        os.chmod(os.path.join(self.src, "sub", "f.txt"), 0o640)

    def test_temp_clone_dir(self):
        path, cleanup = temp_clone_dir(self.src, self.options)
        copy = os.path.join(path, "sub", "f.txt")
        with open(copy, encoding="utf-8") as f:
            self.assertEqual(f.read(), "content")
        self.assertEqual(stat.S_IMODE(os.stat(copy).st_mode), 0o640)
        cleanup()
        self.assertFalse(os.path.exists(path))

    def test_temp_clone_dir_missing_source(self):
        with self.assertRaises(FstPathError):
            temp_clone_dir(os.path.join(self.src, "missing"), self.options)
        self.assertParentEmpty()

    def test_temp_clone_dir_copy_failure(self):
        with patch(
            "fst.tempdir.tree_copy", side_effect=FstSystemError("copy failed")
        ):
            with self.assertRaises(FstSystemError):
                temp_clone_dir(self.src, self.options)
        self.assertParentEmpty()

    def test_temp_clone_chdir(self):
        old, cleanup = temp_clone_chdir(self.src, self.options)
        self.assertEqual(old, self.cwd)
        new = os.getcwd()
        self.assertEqual(os.path.dirname(new), _real(self.parent))
        self.assertTrue(os.path.isfile(os.path.join("sub", "f.txt")))
        cleanup()
        self.assertEqual(os.getcwd(), self.cwd)
        self.assertFalse(os.path.exists(new))

    def test_temp_clone_chdir_copy_failure(self):
        with self.assertRaises(FstPathError):
            temp_clone_chdir(os.path.join(self.src, "missing"), self.options)
        self.assertEqual(os.getcwd(), self.cwd)
        self.assertParentEmpty()
        # The working directory guard was released
        _, cleanup = temp_init_chdir(self.options)
        cleanup()


class TestTempInitChdir(TempDirTestBase):
    def test_temp_init_chdir(self):
        old, cleanup = temp_init_chdir(self.options)
        self.assertEqual(old, self.cwd)
        new = os.getcwd()
        self.assertNotEqual(new, self.cwd)
        self.assertEqual(os.path.dirname(new), _real(self.parent))
        cleanup()
        self.assertEqual(os.getcwd(), self.cwd)
        self.assertFalse(os.path.exists(new))

    def test_temp_init_chdir_context_manager(self):
        with temp_init_chdir(self.options) as old:
            self.assertEqual(old, self.cwd)
            new = os.getcwd()
        self.assertEqual(os.getcwd(), self.cwd)
        self.assertFalse(os.path.exists(new))

    def test_temp_init_chdir_busy(self):
        old, cleanup = temp_init_chdir(self.options)
        new = os.getcwd()
        try:
            with self.assertRaises(FstBusyError):
                temp_init_chdir(self.options)
            self.assertEqual(os.listdir(self.parent), [os.path.basename(new)])
        finally:
            cleanup()
        self.assertEqual(os.getcwd(), old)
        # Released by cleanup
        _, cleanup = temp_init_chdir(self.options)
        cleanup()

    def test_temp_init_chdir_cleanup_twice(self):
        _, cleanup = temp_init_chdir(self.options)
        cleanup()
        _, cleanup2 = temp_init_chdir(self.options)
        new = os.getcwd()
        # A second call of the first cleanup must not release the new handle
        cleanup()
        with self.assertRaises(FstBusyError):
            temp_init_chdir(self.options)
        cleanup2()
        self.assertFalse(os.path.exists(new))

    def test_temp_init_chdir_chdir_failure(self):
        with patch("fst.tempdir.os.chdir", side_effect=OSError("chdir failed")):
            with self.assertRaises(FstSystemError):
                temp_init_chdir(self.options)
        self.assertParentEmpty()
        self.assertEqual(os.getcwd(), self.cwd)
        _, cleanup = temp_init_chdir(self.options)
        cleanup()

    def test_temp_init_chdir_getcwd_failure(self):
        with patch("fst.tempdir.os.getcwd", side_effect=FileNotFoundError("gone")):
            with self.assertRaises(FstSystemError):
                temp_init_chdir(self.options)
        self.assertParentEmpty()

    def test_temp_init_chdir_create_failure(self):
        options = TempDirOptions(parent=os.path.join(self.parent, "missing"))
        with self.assertRaises(FstSystemError):
            temp_init_chdir(options)
        _, cleanup = temp_init_chdir(self.options)
        cleanup()

    def test_temp_init_chdir_restores_before_removal(self):
        calls = []
        real_chdir = os.chdir

        def _chdir(path):
            calls.append(("chdir", path))
            real_chdir(path)

        old, cleanup = temp_init_chdir(self.options)
        new = os.getcwd()
        with patch("fst.tempdir.os.chdir", side_effect=_chdir), patch(
            "fst.tempdir.remove_tree",
            side_effect=lambda root: calls.append(("remove", root)),
        ):
            cleanup()
        self.assertEqual(calls[0], ("chdir", old))
        self.assertEqual(calls[1][0], "remove")
        self.assertEqual(_real(calls[1][1]), new)
        remove_tree(calls[1][1])


class TestTempCreateChdir(TempDirTestBase):
    def test_temp_create_chdir(self):
        config = io.StringIO(
            '[{"Name": "a/"}, {"Name": "a/f.txt", "Contents": "hello", "Perm": "0400"}]'
        )
        old, cleanup = temp_create_chdir(config, self.options)
        new = os.getcwd()
        self.assertEqual(old, self.cwd)
        with open(os.path.join("a", "f.txt"), encoding="utf8") as f:
            self.assertEqual(f.read(), "hello")
        self.assertEqual(stat.S_IMODE(os.stat(os.path.join("a", "f.txt")).st_mode), 0o400)
        cleanup()
        self.assertEqual(os.getcwd(), self.cwd)
        self.assertFalse(os.path.exists(new))

    def test_temp_create_chdir_bad_config(self):
        with self.assertRaises(FstParseError):
            temp_create_chdir("[{", self.options)
        self.assertEqual(os.getcwd(), self.cwd)
        self.assertParentEmpty()
        _, cleanup = temp_init_chdir(self.options)
        cleanup()
