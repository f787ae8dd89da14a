# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Producers feeding a DTPHandler. A producer exposes a single more()
method returning the next chunk of bytes to send, or b"" once
exhausted.
"""

from .exceptions import _FileReadWriteError

__all__ = ["FileProducer", "LineProducer"]


class FileProducer:
    """Producer wrapper for file[-like] objects. Data is sent as is,
    no matter the current TYPE.
    """

    buffer_size = 65536

    def __init__(self, file):
        """
        - (file) file: the file[-like] object, opened in binary mode.
        """
        self.file = file

    def more(self):
        """Attempt a chunk of data of size self.buffer_size."""
        try:
            return self.file.read(self.buffer_size)
        except OSError as err:
            raise _FileReadWriteError(err.errno, err.strerror) from err


class LineProducer:
    """Producer for a sequence of text lines (e.g. a directory
    listing). Each line is terminated with CRLF and encoded; several
    lines are batched into a single chunk.
    """

    # how many lines are joined before returning some data
    loops = 20

    def __init__(self, lines, encoding="utf8", errors="replace"):
        self.iterator = iter(lines)
        self.encoding = encoding
        self.errors = errors

    def more(self):
        """Attempt a chunk of data from iterator by calling
        next() on it different times.
        """
        buffer = []
        for _ in range(self.loops):
            try:
                line = next(self.iterator)
            except StopIteration:
                break
            buffer.append(line.rstrip("\r\n") + "\r\n")
        return "".join(buffer).encode(self.encoding, self.errors)
