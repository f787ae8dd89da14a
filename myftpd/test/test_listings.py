# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import os
import shutil
import tempfile
import time
from unittest.mock import patch

import pytest

from myftpd.exceptions import FilesystemError
from myftpd.listings import FormatListing
from myftpd.listings import LsListing
from myftpd.listings import default_listing_provider

from . import POSIX
from . import MyftpdTestCase
from . import safe_rmpath
from . import touch

HAS_LS = shutil.which("ls") is not None


class TestFormatListing(MyftpdTestCase):

    def setUp(self):
        super().setUp()
        self.root = os.path.realpath(tempfile.mkdtemp())
        self.addCleanup(safe_rmpath, self.root)
        self.provider = FormatListing()

    def test_directory(self):
        touch(os.path.join(self.root, "b.txt"), b"x" * 7)
        os.mkdir(os.path.join(self.root, "a-dir"))
        lines = self.provider(self.root)
        assert len(lines) == 2
        # sorted by name
        assert lines[0].endswith(" a-dir")
        assert lines[0].startswith("d")
        assert lines[1].endswith(" b.txt")
        assert lines[1].startswith("-")
        assert " 7 " in lines[1]
        for line in lines:
            assert not line.endswith("\r\n")

    def test_empty_directory(self):
        assert self.provider(self.root) == []

    def test_single_file(self):
        path = touch(os.path.join(self.root, "file"))
        lines = self.provider(path)
        assert len(lines) == 1
        assert lines[0].endswith(" file")

    def test_missing_path(self):
        with pytest.raises(FilesystemError):
            self.provider(os.path.join(self.root, "missing", "x"))

    def test_format_list_dates(self):
        path = touch(os.path.join(self.root, "old"))
        # older than six months: "month day  year"
        os.utime(path, (0, 86400 * 365 * 10))
        line = next(self.provider.format_list(self.root, ["old"]))
        assert "1979" in line
        # recent: "month day hh:mm"
        now = time.time()
        os.utime(path, (now, now))
        line = next(self.provider.format_list(self.root, ["old"]))
        assert time.strftime("%Y", time.gmtime(now)) not in line.split()
        assert ":" in line

    def test_format_list_skips_vanished_entries(self):
        touch(os.path.join(self.root, "file"))
        lines = list(self.provider.format_list(self.root, ["file", "gone"]))
        assert len(lines) == 1

    @pytest.mark.skipif(not POSIX, reason="UNIX only")
    def test_format_list_symlink(self):
        target = touch(os.path.join(self.root, "target"))
        os.symlink(target, os.path.join(self.root, "link"))
        line = next(self.provider.format_list(self.root, ["link"]))
        assert line.startswith("l")
        assert line.endswith(f"link -> {target}")


@pytest.mark.skipif(not HAS_LS, reason="no ls executable")
class TestLsListing(MyftpdTestCase):

    def setUp(self):
        super().setUp()
        self.root = os.path.realpath(tempfile.mkdtemp())
        self.addCleanup(safe_rmpath, self.root)
        self.provider = LsListing()

    def test_directory(self):
        touch(os.path.join(self.root, "foo.txt"))
        lines = self.provider(self.root)
        assert any(x.endswith("foo.txt") for x in lines)
        for line in lines:
            assert "\n" not in line

    def test_missing_path(self):
        with pytest.raises(FilesystemError):
            self.provider(os.path.join(self.root, "missing"))

    def test_no_such_executable(self):
        provider = LsListing()
        provider.command = ("myftpd-no-such-ls", "-l")
        with pytest.raises(FilesystemError):
            provider(self.root)


class TestDefaultProvider(MyftpdTestCase):

    def test_ls_available(self):
        with patch("myftpd.listings.shutil.which", return_value="/bin/ls"):
            assert isinstance(default_listing_provider(), LsListing)

    def test_ls_not_available(self):
        with patch("myftpd.listings.shutil.which", return_value=None):
            assert isinstance(default_listing_provider(), FormatListing)
