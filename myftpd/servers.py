# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
This module contains the main FTPServer class which listens on a
host:port and dispatches the incoming connections to a handler.

The main thread is async-based (see myftpd.ioloop) and is used only
to accept new connections. Every time a new connection comes in a
new handler instance is created and served by a separate thread,
which is free to block on the control connection, on data transfers
and on the filesystem without hanging the whole FTP server.

Sessions share nothing but the read-only server configuration
(root directory, listening address).
"""

import os
import threading

from .ioloop import Acceptor
from .log import config_logging
from .log import debug
from .log import is_logging_configured
from .log import logger

__all__ = ["FTPServer"]


class FTPServer(Acceptor):
    """Creates a socket listening on <address>, dispatching the requests
    to a <handler> (typically FTPHandler class), one thread per
    connection.

    Depending on the type of address specified IPv4 or IPv6 connections
    (or both, depending from the underlying system) will be accepted.

    All relevant session information is stored in class attributes
    described below.

     - (int) max_cons:
        number of maximum simultaneous connections accepted (defaults
        to 512). Can be set to 0 for unlimited but it is recommended
        to always have a limit to avoid running out of file descriptors
        (DoS).

     - (int) max_cons_per_ip:
        number of maximum connections accepted for the same IP address
        (defaults to 0 == unlimited).

     - (int) join_timeout:
        how many seconds to wait for each session thread when
        shutting down.
    """

    max_cons = 512
    max_cons_per_ip = 0
    join_timeout = 5

    def __init__(
        self, address_or_socket, handler, root=None, ioloop=None, backlog=100
    ):
        """Creates a socket listening on 'address' dispatching
        connections to a 'handler'.

         - (tuple) address_or_socket: the (host, port) pair on which
           the command channel will listen for incoming connections or
           an existent socket object.

         - (instance) handler: the handler class to use.

         - (str) root: the directory served to clients; defaults to
           the current working directory. It is canonicalized once
           and never changes afterwards.

         - (instance) ioloop: a myftpd.ioloop.IOLoop instance

         - (int) backlog: the maximum number of queued connections
           passed to listen(). If a connection request arrives when
           the queue is full the client may raise ECONNRESET.
           Defaults to 100.
        """
        root = os.path.realpath(os.getcwd() if root is None else root)
        if not os.path.isdir(root):
            raise ValueError(f"no such directory: {root!r}")
        Acceptor.__init__(self, ioloop=ioloop)
        self.handler = handler
        self.backlog = backlog
        self.ip_map = []
        self._root = root
        self._active_handlers = {}
        self._active_tasks = []
        self._lock = threading.Lock()
        if callable(getattr(address_or_socket, "listen", None)):
            sock = address_or_socket
            sock.setblocking(False)
            self.set_socket(sock)
            self._af = sock.family
        else:
            self._af = self.bind_af_unspecified(address_or_socket)
        self.listen(backlog)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close_all()

    @property
    def root(self):
        """The canonical directory served to clients (read-only)."""
        return self._root

    @property
    def address(self):
        """The address this server is listening on as a (ip, port) tuple."""
        return self.socket.getsockname()[:2]

    def _map_len(self):
        with self._lock:
            return len(self._active_handlers)

    def _accept_new_cons(self):
        """Return True if the server is willing to accept new connections."""
        if not self.max_cons:
            return True
        return self._map_len() < self.max_cons

    def _log_start(self):
        def get_fqname(obj):
            try:
                return obj.__module__ + "." + obj.__class__.__name__
            except AttributeError:
                try:
                    return obj.__module__ + "." + obj.__name__
                except AttributeError:
                    return str(obj)

        if not is_logging_configured():
            # If we get to this point it means the user hasn't
            # configured any logger. We want logging to be on
            # by default (stderr).
            config_logging()

        if self.handler.passive_ports:
            pasv_ports = (
                f"{self.handler.passive_ports[0]}->"
                f"{self.handler.passive_ports[-1]}"
            )
        else:
            pasv_ports = None
        addr = self.address
        logger.info(
            ">>> starting FTP server on %s:%s, pid=%i <<<",
            addr[0],
            addr[1],
            os.getpid(),
        )
        logger.info("concurrency model: multi-thread")
        logger.info(
            "masquerade (NAT) address: %s", self.handler.masquerade_address
        )
        logger.info("passive ports: %s", pasv_ports)
        logger.info("serving directory: %s", self.root)
        logger.debug("poller: %r", get_fqname(self.ioloop))
        logger.debug("handler: %r", get_fqname(self.handler))
        logger.debug("listing provider: %r", self.handler.listing_provider)
        logger.debug("max connections: %s", self.max_cons or "unlimited")
        logger.debug(
            "max connections per ip: %s", self.max_cons_per_ip or "unlimited"
        )
        logger.debug("timeout: %s", self.handler.timeout or "unlimited")
        logger.debug("banner: %r", self.handler.banner)
        logger.debug("encoding: %r", self.handler.encoding)
        if os.name == "posix":
            logger.debug("use sendfile(2): %s", self.handler.use_sendfile)

    def serve_forever(self, timeout=None, blocking=True, handle_exit=True):
        """Start serving.

         - (float) timeout: the timeout passed to the underlying IO
           loop expressed in seconds.

         - (bool) blocking: if False loop once and then return.

         - (bool) handle_exit: when True catches KeyboardInterrupt and
           SystemExit exceptions (generally caused by SIGTERM / SIGINT
           signals) and gracefully exits after cleaning up resources.
           Also, logs server start and stop.
        """
        log = handle_exit and blocking
        if log:
            self._log_start()
        try:
            self.ioloop.loop(timeout, blocking)
        except (KeyboardInterrupt, SystemExit):
            if not handle_exit:
                raise
        if blocking:
            if log:
                logger.info(
                    ">>> shutting down FTP server, %s active sessions <<<",
                    self._map_len(),
                )
            self.close_all()

    def handle_accepted(self, sock, addr):
        """Called when remote client initiates a connection."""
        handler = None
        ip = None
        try:
            handler = self.handler(sock, self)
            if not handler.connected:
                # client disconnected before we got a chance to
                # look at it
                handler.close()
                return

            ip = handler.remote_ip
            with self._lock:
                self.ip_map.append(ip)

            # For performance and security reasons we should always set a
            # limit for the number of connections (each one costs a
            # thread). When we're over such limit we send a 421 response
            # to the client before disconnecting it.
            if not self._accept_new_cons():
                handler.handle_max_cons()
                self._forget(ip)
                return

            # accept only a limited number of connections from the same
            # source address.
            if self.max_cons_per_ip:
                with self._lock:
                    count = self.ip_map.count(ip)
                if count > self.max_cons_per_ip:
                    handler.handle_max_cons_per_ip()
                    self._forget(ip)
                    return

            thread = threading.Thread(
                target=self._loop,
                args=(handler,),
                name=f"ftpd-{addr[0]}:{addr[1]}",
            )
            with self._lock:
                self._active_handlers[handler] = thread
                self._active_tasks = [
                    t for t in self._active_tasks if t.is_alive()
                ]
                self._active_tasks.append(thread)
            thread.start()
        except Exception:
            # This is supposed to be an application bug that should
            # be fixed. We do not want to tear down the server though
            # (DoS). We just log the exception, hoping that someone
            # will eventually file a bug.
            logger.exception("unhandled exception while accepting %r", addr)
            if handler is not None:
                with self._lock:
                    self._active_handlers.pop(handler, None)
                handler.close()
            else:
                sock.close()
            if ip is not None:
                self._forget(ip)

    def _forget(self, ip):
        with self._lock:
            if ip in self.ip_map:
                self.ip_map.remove(ip)

    def _loop(self, handler):
        """Serve a handler's session in a separate thread."""
        try:
            handler.serve()
        except Exception:
            logger.exception("unhandled exception in session %r", handler)
            handler.close()
        finally:
            with self._lock:
                self._active_handlers.pop(handler, None)
            self._forget(handler.remote_ip)

    def handle_error(self):
        """Called to handle any uncaught exceptions."""
        logger.exception("unhandled exception in FTP server")
        self.close()

    def close_all(self):
        """Stop serving and also disconnects all currently connected
        clients, waiting for their threads to terminate.
        """
        debug("call: close_all()", inst=self)
        self.ioloop.close()
        with self._lock:
            handlers = list(self._active_handlers)
            tasks = list(self._active_tasks)
        for handler in handlers:
            try:
                handler.force_close()
            except Exception:
                logger.exception("error closing %r", handler)
        for thread in tasks:
            thread.join(self.join_timeout)
            if thread.is_alive():
                logger.warning(
                    "thread %r didn't terminate; ignoring it", thread.name
                )
