# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Directory listing providers used by the LIST command.

A provider is any object which, called with an absolute and already
validated real path, returns the listing as a list of text lines
(without line terminators). FTPHandler holds one in its
`listing_provider` class attribute:

>>> from myftpd.handlers import FTPHandler
>>> from myftpd.listings import FormatListing
>>> FTPHandler.listing_provider = FormatListing()
"""

import os
import shutil
import stat
import subprocess
import time

from .exceptions import FilesystemError
from .utils import memoize
from .utils import strerror

try:
    import grp
    import pwd
except ImportError:
    pwd = grp = None


__all__ = [
    "FormatListing",
    "ListingProvider",
    "LsListing",
    "default_listing_provider",
]


_months_map = {
    1: "Jan",
    2: "Feb",
    3: "Mar",
    4: "Apr",
    5: "May",
    6: "Jun",
    7: "Jul",
    8: "Aug",
    9: "Sep",
    10: "Oct",
    11: "Nov",
    12: "Dec",
}


class ListingProvider:
    """Base class for directory listing providers."""

    def __call__(self, path):
        """Return the listing of path as a list of lines.
        Raise FilesystemError if it can't be produced.
        """
        raise NotImplementedError("must be implemented in subclass")


class LsListing(ListingProvider):
    """Produce listings by running the "ls -l" UNIX command.

     - (tuple) command: the command line, path excluded.

     - (str) encoding: the encoding used to decode the command output;
       undecodable bytes are replaced.
    """

    command = ("ls", "-l")
    encoding = "utf8"

    def __call__(self, path):
        try:
            proc = subprocess.run(
                [*self.command, path],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                check=True,
            )
        except subprocess.CalledProcessError as err:
            msg = err.stderr.decode(self.encoding, "replace").strip()
            raise FilesystemError(
                msg or f"ls exited with status {err.returncode}"
            ) from err
        except OSError as err:
            raise FilesystemError(strerror(err)) from err
        return proc.stdout.decode(self.encoding, "replace").splitlines()

    def __repr__(self):
        return f"<{self.__class__.__name__}({' '.join(self.command)!r})>"


class FormatListing(ListingProvider):
    """Produce "ls -l" like listings in pure Python, for systems
    lacking an "ls" executable.

    On platforms which do not support the pwd and grp modules (such
    as Windows), ownership is printed as "owner" and "group" as a
    default, and number of hard links is always "1". On UNIX
    systems, the actual owner, group, and number of links are
    printed.

    This is how output appears to client:

    -rw-rw-rw-   1 owner   group    7045120 Sep 02  3:47 music.mp3
    drwxrwxrwx   1 owner   group          0 Aug 31 18:50 e-books
    -rw-rw-rw-   1 owner   group        380 Sep 02  3:40 module.py

     - (bool) use_gmt_times: show times in GMT rather than local time.
    """

    use_gmt_times = True

    def __call__(self, path):
        try:
            if os.path.isdir(path):
                basedir = path
                listing = sorted(os.listdir(path))
            else:
                os.lstat(path)
                basedir, name = os.path.split(path)
                listing = [name]
            return list(self.format_list(basedir, listing))
        except OSError as err:
            raise FilesystemError(strerror(err)) from err

    def __repr__(self):
        return f"<{self.__class__.__name__}()>"

    if pwd is not None:

        @staticmethod
        def get_user_by_uid(uid):
            """Return the username associated with user id.
            If this can't be determined return raw uid instead.
            """
            try:
                return pwd.getpwuid(uid).pw_name
            except KeyError:
                return uid

    else:

        @staticmethod
        def get_user_by_uid(uid):
            return "owner"

    if grp is not None:

        @staticmethod
        def get_group_by_gid(gid):
            """Return the group name associated with group id.
            If this can't be determined return raw gid instead.
            """
            try:
                return grp.getgrgid(gid).gr_name
            except KeyError:
                return gid

    else:

        @staticmethod
        def get_group_by_gid(gid):
            return "group"

    def format_list(self, basedir, listing):
        """Return an iterator object that yields the entries of given
        directory emulating the "/bin/ls -l" UNIX command output.
        Entries which vanish while listing are skipped.

         - (str) basedir: the absolute dirname.
         - (list) listing: the names of the entries in basedir
        """
        get_user_by_uid = memoize(self.get_user_by_uid)
        get_group_by_gid = memoize(self.get_group_by_gid)
        timefunc = time.gmtime if self.use_gmt_times else time.localtime
        SIX_MONTHS = 180 * 24 * 60 * 60
        now = time.time()
        for basename in listing:
            file = os.path.join(basedir, basename)
            try:
                st = os.lstat(file)
            except OSError:
                continue

            perms = stat.filemode(st.st_mode)
            nlinks = st.st_nlink or 1
            uname = get_user_by_uid(st.st_uid)
            gname = get_group_by_gid(st.st_gid)
            mtime = timefunc(st.st_mtime)
            # if modification time > 6 months shows "month year"
            # else "month hh:mm"; this matches proftpd format, see:
            # https://github.com/giampaolo/pyftpdlib/issues/187
            fmtstr = "%d  %Y" if now - st.st_mtime > SIX_MONTHS else "%d %H:%M"
            try:
                mtimestr = (
                    f"{_months_map[mtime.tm_mon]} "
                    f"{time.strftime(fmtstr, mtime)}"
                )
            except ValueError:
                # mtime prior to year 1900
                mtime = timefunc()
                mtimestr = (
                    f"{_months_map[mtime.tm_mon]} "
                    f"{time.strftime('%d %H:%M', mtime)}"
                )

            if stat.S_ISLNK(st.st_mode):
                # "symlink -> realfile"
                try:
                    basename = basename + " -> " + os.readlink(file)
                except OSError:
                    pass

            # formatting is matched with proftpd ls output
            yield "%s %3s %-8s %-8s %8s %s %s" % (  # noqa: UP031
                perms,
                nlinks,
                uname,
                gname,
                st.st_size,
                mtimestr,
                basename,
            )


def default_listing_provider():
    """Return LsListing if an "ls" executable is available, else
    FormatListing.
    """
    if shutil.which(LsListing.command[0]):
        return LsListing()
    return FormatListing()
