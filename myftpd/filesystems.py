# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import os

from .exceptions import FilesystemError

__all__ = ["AbstractedFS"]


class AbstractedFS:
    """A class used to interact with the file system, confining every
    operation to a single root directory.

    AbstractedFS distinguishes between "real" filesystem paths and
    "virtual" ftp paths emulating a UNIX chroot jail where the client
    can not escape the server root (example: real "/srv/ftp" path will
    be seen as "/" by the client).

    Unlike a plain chroot emulation, client pathnames are canonicalized
    against the real filesystem: ".." components and symbolic links
    are resolved *before* checking whether the result still lies under
    root, so a symlink pointing outside root is rejected as well.

    It also wraps around all os.* calls involving operations against
    the filesystem like opening or removing files.

    FilesystemError exception can be raised from within any of
    the methods below in order to send a customized error string
    to the client.
    """

    def __init__(self, root, cmd_channel):
        """
        - (str) root: the canonical server root (e.g. '/srv/ftp')
        - (instance) cmd_channel: the FTPHandler class instance.
        """
        # By default initial cwd is set to "/" to emulate a chroot jail.
        self._cwd = "/"
        self._root = root
        self.cmd_channel = cmd_channel

    @property
    def root(self):
        """The server root directory (read-only)."""
        return self._root

    @property
    def cwd(self):
        """The client current working directory."""
        return self._cwd

    @cwd.setter
    def cwd(self, path):
        self._cwd = path

    # --- Pathname / conversion utilities

    def ftp2fs(self, ftppath):
        """Translate a "virtual" ftp pathname (typically the raw string
        coming from client) into the equivalent canonical "real"
        filesystem pathname.

        Absolute pathnames are taken relative to root, relative ones
        relative to root + cwd.

        Example (having "/srv/ftp" as root and "/pub" as cwd):
        >>> ftp2fs("foo")
        '/srv/ftp/pub/foo'
        >>> ftp2fs("/foo")
        '/srv/ftp/foo'

        The returned path is NOT guaranteed to be under root: use
        validpath() for that. Raise FilesystemError if the pathname
        can't be canonicalized.
        """
        if ftppath.startswith("/"):
            parts = [ftppath.lstrip("/")]
        else:
            parts = [self.cwd.lstrip("/"), ftppath]
        parts = [x.replace("/", os.sep) for x in parts if x]
        try:
            return self.realpath(os.path.join(self.root, *parts))
        except (OSError, ValueError) as err:
            raise FilesystemError(f"can't resolve {ftppath!r}: {err}") from err

    def fs2ftp(self, fspath):
        """Translate a "real" filesystem pathname into equivalent
        absolute "virtual" ftp pathname depending on the server root.

        Example (having "/srv/ftp" as root directory):
        >>> fs2ftp("/srv/ftp/foo")
        '/foo'

        Directory separators are system independent ("/") and pathname
        returned is always absolutized.

        On invalid pathnames escaping from root (e.g. "/srv" when root
        is "/srv/ftp") always return "/".
        """
        if os.path.isabs(fspath):
            p = os.path.normpath(fspath)
        else:
            p = os.path.normpath(os.path.join(self.root, fspath))
        if not self.validpath(p):
            return "/"
        p = p[len(self.root) :].replace(os.sep, "/")
        if not p.startswith("/"):
            p = "/" + p
        return p

    def validpath(self, path):
        """Check whether the path belongs to the server root.
        Expected argument is a "real" filesystem pathname.

        If path is a symbolic link it is resolved to check its real
        destination. Pathnames which can't be canonicalized are
        considered not valid.
        """
        try:
            root = self.realpath(self.root)
            path = self.realpath(path)
        except (OSError, ValueError):
            return False
        if not root.endswith(os.sep):
            root += os.sep
        if not path.endswith(os.sep):
            path += os.sep
        return path[0 : len(root)] == root

    def isreadable(self, path):
        """Return True if path exists and the server process is allowed
        to read it.
        """
        try:
            return os.path.exists(path) and os.access(path, os.R_OK)
        except ValueError:
            return False

    def iswritable(self, path):
        """Return True if path exists and the server process is allowed
        to modify it.
        """
        try:
            return os.path.exists(path) and os.access(path, os.W_OK)
        except ValueError:
            return False

    # --- Wrapper methods around open() and os.* calls

    def open(self, filename, mode):
        """Open a file returning its handler."""
        return open(filename, mode)

    def chdir(self, path):
        """Change the current directory. If this method is overridden
        it is vital that `cwd` attribute gets set.
        """
        if not os.path.isdir(path):
            raise FilesystemError("Not a directory")
        self.cwd = self.fs2ftp(path)

    def remove(self, path):
        """Remove the specified file."""
        os.remove(path)

    def rename(self, src, dst):
        """Rename the specified src file to the dst filename."""
        os.rename(src, dst)

    # --- Wrapper methods around os.path.* calls

    def isfile(self, path):
        """Return True if path is a file."""
        return os.path.isfile(path)

    def isdir(self, path):
        """Return True if path is a directory."""
        return os.path.isdir(path)

    def getsize(self, path):
        """Return the size of the specified file in bytes."""
        return os.path.getsize(path)

    def realpath(self, path):
        """Return the canonical version of path eliminating any
        symbolic links encountered in the path (if they are
        supported by the operating system).
        """
        return os.path.realpath(path)
