# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

__all__ = ["Error", "FilesystemError"]


class Error(Exception):
    """Base class for myftpd exceptions."""


class FilesystemError(Error):
    """Custom class for filesystem-related exceptions.
    You can raise this from an AbstractedFS subclass or from a
    ListingProvider in order to send a customized error string to
    the client.
    """


class _FileReadWriteError(OSError):
    """Exception raised when reading or writing a file during a transfer."""
