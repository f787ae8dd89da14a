# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
A small IO loop on top of asyncore, used by the main thread only to
accept new connections: every accepted control connection is then
served by its own thread with plain blocking sockets.

poll() and select() loops are reimplemented as they support fd
un/registration.

Follows a server example:

import socket
from myftpd.ioloop import IOLoop, Acceptor

class Server(Acceptor):

    def __init__(self, host, port):
        Acceptor.__init__(self)
        self.create_socket(socket.AF_INET, socket.SOCK_STREAM)
        self.set_reuse_addr()
        self.bind((host, port))
        self.listen(5)

    def handle_accepted(self, sock, addr):
        sock.sendall(b"200 hello\\r\\n")
        sock.close()

server = Server('localhost', 8021)
IOLoop.instance().loop()
"""

import errno
import os
import select
import socket
import sys
import threading
import warnings

from .log import debug
from .log import logger

with warnings.catch_warnings():
    # deprecated in 3.6, gone in 3.12 where "pyasyncore" provides it
    warnings.simplefilter("ignore", DeprecationWarning)
    import asyncore


__all__ = ["Acceptor", "IOLoop"]

_read = asyncore.read

_ERRNOS_DISCONNECTED = {
    errno.ECONNRESET,
    errno.ENOTCONN,
    errno.ESHUTDOWN,
    errno.ECONNABORTED,
    errno.EPIPE,
    errno.EBADF,
    errno.ETIMEDOUT,
}
if hasattr(errno, "WSAECONNRESET"):
    _ERRNOS_DISCONNECTED.add(errno.WSAECONNRESET)
if hasattr(errno, "WSAECONNABORTED"):
    _ERRNOS_DISCONNECTED.add(errno.WSAECONNABORTED)


# ===================================================================
# --- base class
# ===================================================================


class _IOLoop:
    """Base class which will later be referred as IOLoop."""

    READ = 1
    _instance = None
    _lock = threading.Lock()

    def __init__(self):
        self.socket_map = {}

    def __repr__(self):
        return (
            f"<{self.__module__}.{self.__class__.__name__}"
            f"(fds={len(self.socket_map)}) at {id(self):#x}>"
        )

    @classmethod
    def instance(cls):
        """Return a global IOLoop instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def register(self, fd, instance, events):
        """Register a fd, handled by instance for the given events."""
        raise NotImplementedError("must be implemented in subclass")

    def unregister(self, fd):
        """Unregister fd."""
        raise NotImplementedError("must be implemented in subclass")

    def poll(self, timeout):
        """Poll once."""
        raise NotImplementedError("must be implemented in subclass")

    def loop(self, timeout=None, blocking=True):
        """Start the asynchronous IO loop.

         - (float) timeout: the timeout passed to the underlying
           multiplex syscall (select(), poll() etc.).

         - (bool) blocking: if False loop once and then return.
        """
        if blocking:
            poll = self.poll
            socket_map = self.socket_map
            while socket_map:
                poll(timeout)
        elif self.socket_map:
            self.poll(timeout)

    def close(self):
        """Closes the IOLoop, freeing any resources used."""
        debug("closing IOLoop", self)
        self.__class__._instance = None

        instances = sorted(self.socket_map.values(), key=lambda x: x._fileno)
        for inst in instances:
            try:
                inst.close()
            except OSError as err:
                if err.errno != errno.EBADF:
                    logger.exception("error closing %r", inst)
        self.socket_map.clear()


# ===================================================================
# --- select() - POSIX / Windows
# ===================================================================


class Select(_IOLoop):
    """select()-based poller."""

    def __init__(self):
        _IOLoop.__init__(self)
        self._r = []

    def register(self, fd, instance, events):
        if fd not in self.socket_map:
            self.socket_map[fd] = instance
            if events & self.READ:
                self._r.append(fd)

    def unregister(self, fd):
        try:
            del self.socket_map[fd]
        except KeyError:
            debug("call: unregister(); fd was not registered", self)
        try:
            self._r.remove(fd)
        except ValueError:
            pass

    def poll(self, timeout):
        try:
            r, _, _ = select.select(self._r, [], [], timeout)
        except InterruptedError:
            return

        smap_get = self.socket_map.get
        for fd in r:
            obj = smap_get(fd)
            if obj is None or not obj.readable():
                continue
            _read(obj)


# ===================================================================
# --- poll() - POSIX
# ===================================================================


if hasattr(select, "poll"):

    class Poll(_IOLoop):
        """poll() based poller."""

        READ = select.POLLIN
        _ERROR = select.POLLERR | select.POLLHUP | select.POLLNVAL

        def __init__(self):
            _IOLoop.__init__(self)
            self._poller = select.poll()

        def register(self, fd, instance, events):
            self._poller.register(fd, events)
            self.socket_map[fd] = instance

        def unregister(self, fd):
            try:
                del self.socket_map[fd]
            except KeyError:
                debug("call: unregister(); fd was not registered", self)
            else:
                self._poller.unregister(fd)

        def poll(self, timeout):
            # poll() timeout is expressed in milliseconds
            if timeout is not None:
                timeout = int(timeout * 1000)
            try:
                events = self._poller.poll(timeout)
            except InterruptedError:
                return
            for fd, event in events:
                inst = self.socket_map.get(fd)
                if inst is None:
                    continue
                if event & self._ERROR and not event & self.READ:
                    inst.handle_close()
                elif event & self.READ and inst.readable():
                    _read(inst)


# ===================================================================
# --- choose the better poller for this platform
# ===================================================================

if hasattr(select, "poll"):
    IOLoop = Poll
else:
    IOLoop = Select


# ===================================================================
# --- asyncore dispatchers
# ===================================================================


class Acceptor(asyncore.dispatcher):
    """A listening asyncore dispatcher registered into an IOLoop
    instead of the global asyncore socket map.
    """

    def __init__(self, ioloop=None):
        self.ioloop = ioloop or IOLoop.instance()
        self._fileno = None
        asyncore.dispatcher.__init__(self)

    def add_channel(self, map=None):
        self.ioloop.register(self._fileno, self, self.ioloop.READ)

    def del_channel(self, map=None):
        if self._fileno is not None:
            self.ioloop.unregister(self._fileno)
            self._fileno = None

    def bind_af_unspecified(self, addr):
        """Same as bind() but guesses address family from addr.
        Return the address family just determined.
        """
        assert self.socket is None
        host, port = addr
        if host == "":
            # When using bind() "" is a symbolic name meaning all
            # available interfaces. People might not know we're
            # using getaddrinfo() internally, which uses None
            # instead of "", so we'll make the conversion for them.
            host = None
        err = "getaddrinfo() returned an empty list"
        info = socket.getaddrinfo(
            host,
            port,
            socket.AF_UNSPEC,
            socket.SOCK_STREAM,
            0,
            socket.AI_PASSIVE,
        )
        for res in info:
            self.socket = None
            self.del_channel()
            af, socktype, _proto, _canonname, sa = res
            try:
                self.create_socket(af, socktype)
                self.set_reuse_addr()
                self.bind(sa)
            except OSError as _:
                err = _
                if self.socket is not None:
                    self.socket.close()
                    self.del_channel()
                    self.socket = None
                continue
            break
        if self.socket is None:
            self.del_channel()
            raise OSError(err)
        return af

    def handle_accept(self):
        try:
            sock, addr = self.accept()
        except TypeError:
            # sometimes accept() might return None
            return
        except OSError as err:
            # ECONNABORTED might be thrown on *BSD
            if err.errno != errno.ECONNABORTED:
                raise
        else:
            # sometimes addr == None instead of (ip, port)
            if addr is not None:
                self.handle_accepted(sock, addr)

    def handle_accepted(self, sock, addr):
        sock.close()
        self.log_info("unhandled accepted event", "warning")

    # overridden for convenience; avoid to reuse address on Windows
    if (os.name in ("nt", "ce")) or (sys.platform == "cygwin"):

        def set_reuse_addr(self):
            pass

    def close(self):
        debug("call: close()", inst=self)
        asyncore.dispatcher.close(self)
