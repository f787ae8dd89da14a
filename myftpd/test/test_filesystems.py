# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import os
import tempfile

import pytest

from myftpd.exceptions import FilesystemError
from myftpd.filesystems import AbstractedFS

from . import POSIX
from . import MyftpdTestCase
from . import safe_rmpath
from . import touch


class TestAbstractedFS(MyftpdTestCase):
    """Test for conversion utility methods of AbstractedFS class."""

    def setUp(self):
        super().setUp()
        self.root = os.path.realpath(tempfile.mkdtemp())
        self.addCleanup(safe_rmpath, self.root)
        self.fs = AbstractedFS(self.root, None)

    def join(self, *parts):
        return os.path.join(self.root, *parts)

    def test_root_is_readonly(self):
        with pytest.raises(AttributeError):
            self.fs.root = "/"

    def test_ftp2fs(self):
        ae = self.assertEqual
        fs = self.fs
        root = self.root

        fs.cwd = "/"
        ae(fs.ftp2fs(""), root)
        ae(fs.ftp2fs("/"), root)
        ae(fs.ftp2fs("."), root)
        ae(fs.ftp2fs("a"), self.join("a"))
        ae(fs.ftp2fs("/a"), self.join("a"))
        ae(fs.ftp2fs("/a/"), self.join("a"))
        ae(fs.ftp2fs("a/.."), root)
        ae(fs.ftp2fs("a/b"), self.join("a", "b"))
        ae(fs.ftp2fs("/a/b/.."), self.join("a"))
        ae(fs.ftp2fs("/a/b/../.."), root)

        fs.cwd = "/sub"
        ae(fs.ftp2fs(""), self.join("sub"))
        ae(fs.ftp2fs("/"), root)
        ae(fs.ftp2fs("."), self.join("sub"))
        ae(fs.ftp2fs(".."), root)
        ae(fs.ftp2fs("a"), self.join("sub", "a"))
        ae(fs.ftp2fs("a/b/.."), self.join("sub", "a"))
        ae(fs.ftp2fs("/a"), self.join("a"))

    def test_ftp2fs_dotdot_escaping_root(self):
        # ".." is resolved against the real filesystem: the result is
        # outside root and validpath() must say so
        fs = self.fs
        path = fs.ftp2fs("../../etc/passwd")
        assert not path.startswith(self.root + os.sep)
        assert not fs.validpath(path)
        assert not fs.validpath(fs.ftp2fs(".."))

    def test_fs2ftp(self):
        ae = self.assertEqual
        fs = self.fs
        ae(fs.fs2ftp(self.root), "/")
        ae(fs.fs2ftp(self.join("a")), "/a")
        ae(fs.fs2ftp(self.join("a", "b")), "/a/b")
        ae(fs.fs2ftp(self.join("a", "..")), "/")
        ae(fs.fs2ftp("a"), "/a")
        # escaping root
        ae(fs.fs2ftp(os.path.dirname(self.root)), "/")
        ae(fs.fs2ftp(os.sep), "/")

    def test_validpath(self):
        fs = self.fs
        assert fs.validpath(self.root)
        assert fs.validpath(self.join("a"))
        assert fs.validpath(self.join("a", "b"))
        assert not fs.validpath(os.path.dirname(self.root))
        assert not fs.validpath(self.root + "-sibling")
        assert not fs.validpath(os.sep)

    @pytest.mark.skipif(not POSIX, reason="UNIX only")
    def test_validpath_symlink_escaping_root(self):
        outside = os.path.realpath(tempfile.mkdtemp())
        self.addCleanup(safe_rmpath, outside)
        target = touch(os.path.join(outside, "secret"))
        link = self.join("link")
        os.symlink(target, link)
        assert not self.fs.validpath(link)
        # the link is resolved by ftp2fs
        assert self.fs.ftp2fs("link") == target
        assert not self.fs.validpath(self.fs.ftp2fs("link"))

        dirlink = self.join("dirlink")
        os.symlink(outside, dirlink)
        assert not self.fs.validpath(self.fs.ftp2fs("dirlink/secret"))

    @pytest.mark.skipif(not POSIX, reason="UNIX only")
    def test_validpath_symlink_inside_root(self):
        target = touch(self.join("file"))
        os.symlink(target, self.join("link"))
        assert self.fs.validpath(self.join("link"))
        assert self.fs.ftp2fs("link") == target

    def test_isreadable_iswritable(self):
        fs = self.fs
        path = touch(self.join("file"))
        assert fs.isreadable(path)
        assert fs.iswritable(path)
        assert fs.isreadable(self.root)
        missing = self.join("missing")
        assert not fs.isreadable(missing)
        assert not fs.iswritable(missing)
        assert not fs.isreadable(self.join("foo\x00bar"))

    def test_chdir(self):
        fs = self.fs
        os.mkdir(self.join("sub"))
        fs.chdir(self.join("sub"))
        assert fs.cwd == "/sub"
        fs.chdir(self.root)
        assert fs.cwd == "/"

    def test_chdir_not_a_dir(self):
        path = touch(self.join("file"))
        with pytest.raises(FilesystemError):
            self.fs.chdir(path)
        assert self.fs.cwd == "/"

    def test_file_operations(self):
        fs = self.fs
        path = touch(self.join("file"), b"x" * 10)
        assert fs.isfile(path)
        assert not fs.isdir(path)
        assert fs.isdir(self.root)
        assert fs.getsize(path) == 10
        with fs.open(path, "rb") as f:
            assert f.read() == b"x" * 10
        dst = self.join("file2")
        fs.rename(path, dst)
        assert not os.path.exists(path)
        assert os.path.isfile(dst)
        fs.remove(dst)
        assert not os.path.exists(dst)
