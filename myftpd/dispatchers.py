# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Data channel negotiation. An FTPHandler keeps at most one of these
objects around (its data channel "mode"); every transfer command
calls establish() on it to get a freshly connected data socket.

 - PassiveDTP (PASV / EPSV): the listening socket stays open across
   transfers; each establish() accepts exactly one connection.

 - ActiveDTP (PORT / EPRT): each establish() dials the client again.
"""

import errno
import random
import socket

from .log import debug
from .log import logger

__all__ = ["ActiveDTP", "PassiveDTP"]


class PassiveDTP:
    """Creates a socket listening on a local port, from which data
    connections are accepted. Used for handling PASV and EPSV commands.

     - (int) timeout: the timeout for a remote client to establish
       connection with the listening socket. Defaults to None (wait
       forever).

     - (int) backlog: the maximum number of queued connections passed
       to listen(). If a connection request arrives when the queue is
       full the client may raise ECONNRESET. Defaults to 5.
    """

    timeout = None
    backlog = 5

    def __init__(self, cmd_channel, extmode=False):
        """Initialize the passive data server and send the 227 / 229
        response to the client.

        - (instance) cmd_channel: the command channel class instance.
        - (bool) extmode: whether use extended passive mode response type.

        Raise OSError if the listening socket can't be created.
        """
        self.cmd_channel = cmd_channel
        self.socket = None
        self._closed = False

        local_ip = self.cmd_channel.socket.getsockname()[0]
        masqueraded_ip = self.cmd_channel.masquerade_address
        af = self.cmd_channel.socket.family

        self.socket = socket.socket(af, socket.SOCK_STREAM)
        try:
            self._bind(local_ip)
            self.socket.listen(self.backlog)
        except OSError:
            self.close()
            raise
        self.socket.settimeout(self.timeout)

        self.port = self.socket.getsockname()[1]
        if not extmode:
            ip = masqueraded_ip or local_ip
            if ip.startswith("::ffff:"):
                # In this scenario, the server has an IPv6 socket, but
                # the remote client is using IPv4 and its address is
                # represented as an IPv4-mapped IPv6 address which
                # looks like this ::ffff:151.12.5.65, see:
                # https://en.wikipedia.org/wiki/IPv6#IPv4-mapped_addresses
                # https://datatracker.ietf.org/doc/html/rfc3493.html#section-3.7
                # We truncate the first bytes to make it look like a
                # common IPv4 address.
                ip = ip[7:]
            # The format of 227 response in not standardized.
            # This is the most expected:
            resp = "227 Entering passive mode (%s,%d,%d)." % (  # noqa: UP031
                ip.replace(".", ","),
                self.port // 256,
                self.port % 256,
            )
            self.cmd_channel.respond(resp)
        else:
            self.cmd_channel.respond(
                f"229 Entering extended passive mode (|||{int(self.port)}|)."
            )

    def __repr__(self):
        status = "closed" if self._closed else f"port={self.port}"
        return f"<{self.__class__.__name__}({status}) at {id(self):#x}>"

    def _bind(self, local_ip):
        if self.cmd_channel.passive_ports is None:
            # By using 0 as port number value we let kernel choose a
            # free unprivileged random port.
            self.socket.bind((local_ip, 0))
            return
        ports = list(self.cmd_channel.passive_ports)
        while ports:
            port = ports.pop(random.randint(0, len(ports) - 1))
            self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                self.socket.bind((local_ip, port))
            except PermissionError:
                self.cmd_channel.log(
                    f"ignoring EPERM when bind()ing port {port}",
                    logfun=logger.debug,
                )
            except OSError as err:
                if err.errno != errno.EADDRINUSE:
                    raise
            else:
                return
        # If cannot use one of the ports in the configured range
        # we'll use a kernel-assigned port, and log a message
        # reporting the issue.
        self.socket.bind((local_ip, 0))
        self.cmd_channel.log(
            "Can't find a valid passive port in the configured range. "
            "A random kernel-assigned port will be used.",
            logfun=logger.warning,
        )

    def establish(self):
        """Accept one data connection and return its socket.
        The listening socket is left open for further transfers.
        """
        sock, addr = self.socket.accept()
        sock.settimeout(self.timeout)
        debug(f"accepted data connection from {addr[0]}:{addr[1]}", self)
        return sock

    def close(self):
        """Close the listening socket. Safe to call from a different
        thread: a pending accept() gets interrupted.
        """
        debug("call: close()", inst=self)
        if self._closed:
            return
        self._closed = True
        if self.socket is not None:
            try:
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self.socket.close()


class ActiveDTP:
    """Connects to remote client and returns the resulting connection.
    Used for handling PORT and EPRT commands.

     - (int) timeout: the timeout for us to establish connection with
       the client's listening data socket. Defaults to None (wait
       forever).
    """

    timeout = None

    def __init__(self, ip, port, cmd_channel):
        """Remember the remote data endpoint. No connection is made
        until establish() is called.

         - (str) ip: the remote IP address.
         - (int) port: the remote port.
         - (instance) cmd_channel: the command channel class instance.
        """
        self.ip = ip
        self.port = port
        self.cmd_channel = cmd_channel
        if ip.count(".") == 3:
            self._normalized_addr = f"{ip}:{port}"
        else:
            self._normalized_addr = f"[{ip}]:{port}"

    def __repr__(self):
        return (
            f"<{self.__class__.__name__}({self._normalized_addr}) at"
            f" {id(self):#x}>"
        )

    def _source_address(self, af):
        # Bind the data socket to the same local address used by the
        # control connection, if the address families agree.
        source_ip = self.cmd_channel.socket.getsockname()[0]
        if af == socket.AF_INET and source_ip.startswith("::ffff:"):
            source_ip = source_ip[7:]
        if (af == socket.AF_INET) != (":" not in source_ip):
            return None
        return (source_ip, 0)

    def establish(self):
        """Dial the remote endpoint and return the connected socket."""
        err = "getaddrinfo() returned an empty list"
        info = socket.getaddrinfo(
            self.ip, self.port, socket.AF_UNSPEC, socket.SOCK_STREAM
        )
        for af, socktype, proto, _, sa in info:
            sock = socket.socket(af, socktype, proto)
            try:
                sock.settimeout(self.timeout)
                source = self._source_address(af)
                if source is not None:
                    sock.bind(source)
                sock.connect(sa)
            except OSError as _:
                err = _
                sock.close()
                continue
            debug(f"connected to {self._normalized_addr}", self)
            return sock
        if isinstance(err, OSError):
            raise err
        raise OSError(err)

    def close(self):
        # nothing to release: a socket only exists during a transfer
        debug("call: close()", inst=self)
