# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import collections
import logging
import os
import socket
import time

from . import __ver__
from .dispatchers import ActiveDTP
from .dispatchers import PassiveDTP
from .exceptions import FilesystemError
from .exceptions import _FileReadWriteError
from .filesystems import AbstractedFS
from .ioloop import _ERRNOS_DISCONNECTED
from .listings import default_listing_provider
from .log import debug
from .log import logger
from .producers import FileProducer
from .producers import LineProducer
from .utils import strerror

__all__ = [
    "RENAME_IDLE",
    "DTPHandler",
    "FTPHandler",
    "RenameIdle",
    "RenamePending",
    "proto_cmds",
]

timer = getattr(time, "monotonic", time.time)
_LIST_IGNORED_ARGS = ("-a", "-l", "-al", "-la")


# "arg" tells whether the command requires an argument (True), takes
# an optional one (None) or takes none (False; anything given is
# ignored).
proto_cmds = {
    "CWD": dict(
        arg=True,
        help="Syntax: CWD <SP> dir-name (change working directory).",
    ),
    "DELE": dict(arg=True, help="Syntax: DELE <SP> file-name (delete file)."),
    "EPRT": dict(
        arg=True,
        help="Syntax: EPRT <SP> |proto|ip|port| (extended active mode).",
    ),
    "EPSV": dict(
        arg=None, help="Syntax: EPSV [<SP> proto] (extended passive mode)."
    ),
    "LIST": dict(
        arg=None, help="Syntax: LIST [<SP> path] (list files)."
    ),
    "MODE": dict(
        arg=None,
        help="Syntax: MODE [<SP> mode] (noop; set data transfer mode).",
    ),
    "NOOP": dict(arg=False, help="Syntax: NOOP (just do nothing)."),
    "PASS": dict(
        arg=None, help="Syntax: PASS [<SP> password] (set user password)."
    ),
    "PASV": dict(
        arg=False, help="Syntax: PASV (open passive data connection)."
    ),
    "PORT": dict(
        arg=True,
        help="Syntax: PORT <sp> h,h,h,h,p,p (open active data connection).",
    ),
    "PWD": dict(
        arg=False, help="Syntax: PWD (get current working directory)."
    ),
    "QUIT": dict(arg=False, help="Syntax: QUIT (quit current session)."),
    "RETR": dict(
        arg=True, help="Syntax: RETR <SP> file-name (retrieve a file)."
    ),
    "RNFR": dict(
        arg=True,
        help="Syntax: RNFR <SP> file-name (rename (source name)).",
    ),
    "RNTO": dict(
        arg=True,
        help="Syntax: RNTO <SP> file-name (rename (destination name)).",
    ),
    "SIZE": dict(
        arg=True, help="Syntax: SIZE <SP> file-name (get file size)."
    ),
    "STOR": dict(
        arg=True, help="Syntax: STOR <SP> file-name (store a file)."
    ),
    "STRU": dict(
        arg=None,
        help="Syntax: STRU [<SP> type] (noop; set file structure).",
    ),
    "SYST": dict(arg=False, help="Syntax: SYST (get operating system type)."),
    "TYPE": dict(
        arg=None, help="Syntax: TYPE [<SP> A | I] (set transfer type)."
    ),
    "USER": dict(
        arg=None, help="Syntax: USER [<SP> user-name] (set username)."
    ),
}


# ===================================================================
# --- rename state
# ===================================================================


class RenameIdle:
    """No rename is in progress."""

    __slots__ = ()

    def __repr__(self):
        return "RenameIdle()"


RENAME_IDLE = RenameIdle()


class RenamePending(collections.namedtuple("RenamePending", ["path"])):
    """RNFR was accepted: the next RNTO renames `path` (a canonical
    real pathname).
    """

    __slots__ = ()


# ===================================================================
# --- DTP class
# ===================================================================


class DTPHandler:
    """Class handling server-data-transfer-process (server-DTP, see
    RFC-959) managing a single data connection: it is created once
    the connection is established and closed as soon as the transfer
    is over.

    All relevant session information are stored in instance
    variables of the handler:

     - (int) timeout: the timeout which roughly is the maximum time we
       permit data transfers to stall for with no progress. Defaults
       to None (no timeout).

     - (int) ac_in_buffer_size: the size of the chunks read from the
       data socket while receiving a file.
    """

    timeout = None
    ac_in_buffer_size = 65536

    def __init__(self, sock, cmd_channel):
        """Initialize the data transfer handler.

         - (instance) sock: the connected data socket.
         - (instance) cmd_channel: the command channel class instance.
        """
        self.socket = sock
        self.cmd_channel = cmd_channel
        self.receive = False
        self.tot_bytes_sent = 0
        self.tot_bytes_received = 0
        self._start_time = timer()
        self._closed = False
        self.socket.settimeout(self.timeout)

    def __repr__(self):
        status = [self.__class__.__module__ + "." + self.__class__.__name__]
        status.append(f"(addr={self.cmd_channel.remote_ip}:"
                      f"{self.cmd_channel.remote_port}, "
                      f"receive={self.receive!r})")
        return f"<{' '.join(status)} at {id(self):#x}>"

    def use_sendfile(self, producer):
        return (
            self.cmd_channel.use_sendfile
            and isinstance(producer, FileProducer)
            and hasattr(producer.file, "fileno")
        )

    def push_with_producer(self, producer):
        """Send everything producer yields, until it is exhausted.

        Raise _FileReadWriteError if the local file can't be read and
        OSError if the data connection breaks.
        """
        self.receive = False
        if self.use_sendfile(producer):
            try:
                self.tot_bytes_sent += self.socket.sendfile(producer.file)
                return
            except OSError as err:
                if (
                    isinstance(err, TimeoutError)
                    or err.errno in _ERRNOS_DISCONNECTED
                ):
                    raise
                # sendfile() leaves the file positioned after the last
                # byte sent; go on from there with plain send()
                logger.warning(
                    "sendfile() failed (%s); falling back on using plain "
                    "send",
                    err,
                )
                self.tot_bytes_sent += producer.file.tell()
        while True:
            data = producer.more()
            if not data:
                break
            self.socket.sendall(data)
            self.tot_bytes_sent += len(data)

    def receive_into(self, file):
        """Write everything the client sends into file, until the
        client closes the data connection.

        Raise _FileReadWriteError if the local file can't be written
        and OSError if the data connection breaks.
        """
        self.receive = True
        while True:
            chunk = self.socket.recv(self.ac_in_buffer_size)
            if not chunk:
                break
            try:
                file.write(chunk)
            except OSError as err:
                raise _FileReadWriteError(err.errno, err.strerror) from err
            self.tot_bytes_received += len(chunk)
        try:
            file.flush()
        except OSError as err:
            raise _FileReadWriteError(err.errno, err.strerror) from err

    def get_transmitted_bytes(self):
        """Return the number of transmitted bytes."""
        return self.tot_bytes_sent + self.tot_bytes_received

    def get_elapsed_time(self):
        """Return the transfer elapsed time in seconds."""
        return timer() - self._start_time

    def shutdown(self):
        """Interrupt a transfer in progress; may be called from a
        different thread.
        """
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self):
        """Close the data connection."""
        debug("call: close()", inst=self)
        if not self._closed:
            self._closed = True
            self.shutdown()
            self.socket.close()


# ===================================================================
# --- FTP
# ===================================================================


class FTPHandler:
    """Implements the FTP server Protocol Interpreter (see RFC-959),
    handling commands received from the client on the control channel.

    One instance serves exactly one control connection, from the
    thread started by FTPServer: it reads a request line, fully
    processes it (data transfer included) and only then reads the
    next one.

    All relevant session information is stored in class attributes
    reproduced below and can be modified before instantiating this
    class.

     - (int) timeout:
       The timeout which is the maximum time a remote client may spend
       between FTP commands. If the timeout triggers, the remote client
       will be kicked off. Defaults to None (no timeout).

     - (str) banner: the string sent when client connects.

     - (int) max_line_length: the maximum length of a request line;
       longer lines are rejected with "500 Command too long.".

     - (str) masquerade_address: the "masqueraded" IP address to
       provide along PASV reply when server is behind a NAT.

     - (list) passive_ports:
       what ports the ftpd will use for its passive data transfers.
       Value expected is a list of integers (e.g. range(60000, 65535)).
       When configured myftpd will no longer use kernel-assigned random
       ports (default None).

     - (bool) use_sendfile: when True uses sendfile() system call to
       send a file resulting in faster uploads (from server to client).
       Works on UNIX only.

     - (bool) tcp_no_delay: controls the use of the TCP_NODELAY socket
       option which disables the Nagle algorithm resulting in
       significantly better performances (default True on all systems
       where it is supported).

     - (str) encoding: the encoding used for client / server
       communication. Defaults to "utf8".

     - (str) unicode_errors:
       the error handler passed to ''.encode() and ''.decode().

     - (instance) listing_provider: the callable producing LIST output
       given a real path (see myftpd.listings).

    All relevant instance attributes initialized when client connects
    are reproduced below. You may be interested in them in case you
    want to subclass the original FTPHandler.

     - (str) remote_ip: the remote IP address.

     - (int) remote_port: the remote port.

     - (instance) server: the FTPServer instance.

     - (instance) fs: the AbstractedFS instance holding the working
       directory.

     - (instance) data_channel: the DTPHandler instance of the transfer
       in progress, if any.
    """

    # these are overridable defaults

    # default classes
    abstracted_fs = AbstractedFS
    dtp_handler = DTPHandler
    active_dtp = ActiveDTP
    passive_dtp = PassiveDTP

    # session attributes (explained in the docstring)
    timeout = None
    banner = f"(myftpd {__ver__})"
    max_line_length = 2048
    masquerade_address = None
    passive_ports = None
    use_sendfile = hasattr(os, "sendfile")
    tcp_no_delay = hasattr(socket, "TCP_NODELAY")
    encoding = "utf8"
    unicode_errors = "replace"
    listing_provider = default_listing_provider()
    log_prefix = "%(remote_ip)s:%(remote_port)s"

    def __init__(self, conn, server):
        """Initialize the command channel.

         - (instance) conn: the socket object instance of the newly
           established connection.
         - (instance) server: the FTP server class instance.
        """
        # public session attributes
        self.server = server
        self.socket = conn
        self.fs = self.abstracted_fs(server.root, self)
        self.proto_cmds = proto_cmds.copy()
        self.data_channel = None
        self.username = ""
        self.remote_ip = ""
        self.remote_port = ""
        self.started = time.time()

        # private session attributes
        self._current_type = "a"
        self._rename_state = RENAME_IDLE
        self._dtp = None
        self._quit_pending = False
        self._closed = False
        self._rfile = None

        # The connection may already be gone at this point: the
        # server checks remote_ip and discards us if it is empty.
        try:
            self.remote_ip, self.remote_port = conn.getpeername()[:2]
        except OSError as err:
            debug(f"getpeername() failed: {err}", self)
            return
        if self.remote_ip.startswith("::ffff:"):
            # IPv4 client connected to a dual-stack IPv6 socket.
            self.remote_ip = self.remote_ip[7:]

        # blocking I/O, possibly with a timeout
        conn.settimeout(self.timeout)
        # disable Nagle algorithm for the control socket only, resulting
        # in significantly better performances
        if self.tcp_no_delay:
            try:
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as err:
                debug(f"call: setsockopt(TCP_NODELAY) failed: {err}", self)
        self._rfile = conn.makefile("rb")

    def __repr__(self):
        status = [self.__class__.__module__ + "." + self.__class__.__name__]
        status.append(f"(addr={self.remote_ip}:{self.remote_port}")
        status.append(f"cwd={self.fs.cwd!r})")
        return f"<{' '.join(status)} at {id(self):#x}>"

    __str__ = __repr__

    @property
    def connected(self):
        return bool(self.remote_ip) and not self._closed

    @property
    def rename_state(self):
        """Either RENAME_IDLE or a RenamePending instance."""
        return self._rename_state

    @property
    def data_mode(self):
        """The negotiated data channel: None, an ActiveDTP or a
        PassiveDTP instance.
        """
        return self._dtp

    # --- session loop

    def serve(self):
        """Run the session: send the greeting, then read and process
        request lines one at a time until the client quits or goes
        away. Always closes the session before returning.
        """
        try:
            self.handle()
            while not self._quit_pending and not self._closed:
                line = self.readline()
                if line is None:
                    break
                if line:
                    self.found_terminator(line)
        except TimeoutError:
            self.handle_timeout()
        except OSError as err:
            # control connection went away (reset, broken pipe, ...)
            if not self._closed:
                self.log(
                    f"control connection error: {err}", logfun=logger.debug
                )
        finally:
            self.close()

    def handle(self):
        """Return a 220 'ready' response to the client over the command
        channel.
        """
        self.on_connect()
        self.log("FTP session opened (connect)")
        self.respond(f"220 {self.banner}")

    def handle_max_cons(self):
        """Called when limit for maximum number of connections is reached."""
        msg = "421 Too many connections. Service temporarily unavailable."
        self._reject(msg)

    def handle_max_cons_per_ip(self):
        """Called when too many clients are connected from the same IP."""
        msg = "421 Too many connections from the same IP address."
        self._reject(msg)

    def _reject(self, msg):
        try:
            self.respond_w_warning(msg)
        except OSError:
            pass
        self.close()

    def handle_timeout(self):
        """Called when client does not send any command within the time
        specified in <timeout> attribute."""
        msg = "Control connection timed out."
        self.log(msg)
        try:
            self.respond("421 " + msg)
        except OSError:
            pass

    def readline(self):
        """Read one request line from the control connection and
        return it decoded and stripped of its terminator. Return None
        on EOF and "" for lines which must be ignored.
        """
        data = self._rfile.readline(self.max_line_length)
        if not data:
            return None
        if not data.endswith(b"\n") and len(data) >= self.max_line_length:
            # discard the rest of the line
            while data and not data.endswith(b"\n"):
                data = self._rfile.readline(self.max_line_length)
            self.respond_w_warning("500 Command too long.")
            return ""
        return data.rstrip(b"\r\n").decode(self.encoding, self.unicode_errors)

    def found_terminator(self, line):
        """Called when a complete request line has been received."""
        line = line.strip()
        if not line:
            return
        cmd = line.split()[0]
        arg = line[len(cmd) + 1 :].strip()

        if cmd == "PASS":
            self.log("<- PASS ******")
        else:
            self.log(f"<- {line}")

        self.pre_process_command(line, cmd, arg)

    def pre_process_command(self, line, cmd, arg):
        # Commands are matched case-sensitively, as received.
        if cmd not in self.proto_cmds:
            self.respond(
                "202 Command not implemented, superfluous at this site."
            )
            return

        if not arg and self.proto_cmds[cmd]["arg"] is True:
            self.respond("501 Syntax error in parameters or arguments.")
            return

        self.process_command(cmd, arg)

    def process_command(self, cmd, *args, **kwargs):
        """Process command by calling the corresponding ftp_* class
        method (e.g. for received command "MKD pathname", ftp_MKD()
        method is called with "pathname" as the argument).

        OSError escaping from a command handler means the control
        connection is broken and terminates the session; any other
        exception is logged and answered with a 451.
        """
        method = getattr(self, "ftp_" + cmd)
        try:
            method(*args, **kwargs)
        except OSError:
            raise
        except Exception:
            self.log_exception(self)
            self.respond(
                "451 Requested action aborted. Local error in processing."
            )

    def close(self):
        """Close the current channel disconnecting the client."""
        debug("call: close()", inst=self)
        if self._closed:
            return
        self._closed = True
        self._shutdown_dtp()
        if self.data_channel is not None:
            self.data_channel.close()
            self.data_channel = None
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        if self._rfile is not None:
            self._rfile.close()
        self.socket.close()
        if self.remote_ip:
            self.log("FTP session closed (disconnect).")
            self.on_disconnect()

    def force_close(self):
        """Interrupt the session from another thread. Sockets are only
        shut down: the session thread wakes up from whatever call it
        is blocked into and cleans up by itself.
        """
        debug("call: force_close()", inst=self)
        dtp = self._dtp
        if dtp is not None:
            dtp.close()
        data_channel = self.data_channel
        if data_channel is not None:
            data_channel.shutdown()
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def _shutdown_dtp(self):
        """Close the negotiated data channel mode, if any."""
        if self._dtp is not None:
            self._dtp.close()
            self._dtp = None

    # --- callbacks

    def on_connect(self):
        """Called when client connects, *before* sending the initial
        220 reply.
        """

    def on_disconnect(self):
        """Called when connection is closed."""

    def on_file_sent(self, file):
        """Called every time a file has been successfully sent.
        "file" is the absolute name of the file just being sent.
        """

    def on_file_received(self, file):
        """Called every time a file has been successfully received.
        "file" is the absolute name of the file just being received.
        """

    def on_incomplete_file_sent(self, file):
        """Called every time a file has not been entirely sent.
        (e.g. transfer aborted by client).
        "file" is the absolute name of that file.
        """

    def on_incomplete_file_received(self, file):
        """Called every time a file has not been entirely received
        (e.g. transfer aborted by client).
        "file" is the absolute name of that file.
        """

    # --- utility

    def respond(self, resp, logfun=None):
        """Send a response to the client using the command channel."""
        self.socket.sendall(
            (resp + "\r\n").encode(self.encoding, self.unicode_errors)
        )
        if logfun is None:
            self.logline(f"-> {resp}")
        else:
            self.log(f"-> {resp}", logfun=logfun)

    def respond_w_warning(self, resp):
        self.respond(resp, logfun=logger.warning)

    def _resolve(self, ftppath):
        """Return the canonical real pathname of ftppath, or None if it
        can't be resolved or lies outside the server root.
        """
        try:
            path = self.fs.ftp2fs(ftppath)
        except FilesystemError as err:
            self.logline(str(err))
            return None
        if not self.fs.validpath(path):
            self.log(
                f"rejected path outside root: {ftppath!r}",
                logfun=logger.warning,
            )
            return None
        return path

    def _data_mode_negotiated(self):
        if self._dtp is None:
            self.respond("425 Use PORT or PASV first.")
            return False
        return True

    def _transfer(self, cmd, path, preliminary, producer=None, file=None,
                  opener=None, done="226 Transfer complete."):
        """Run a transfer over a new data connection, then send exactly
        one final response.

        The preliminary (150) response is sent before the data
        connection is established. If producer is given its data is
        sent to the client, else what the client sends is written into
        the file returned by opener(), which is called only once the
        data connection is up. file (if any) is closed when done.
        """
        receive = producer is None
        self.respond(preliminary)
        try:
            sock = self._dtp.establish()
        except OSError as err:
            if file is not None:
                file.close()
            self.log(
                f"can't open data connection: {err}", logfun=logger.warning
            )
            self.respond("425 Can't open data connection.")
            return

        if opener is not None:
            try:
                file = opener()
            except (OSError, FilesystemError) as err:
                sock.close()
                self.respond(f"450 {strerror(err)}.")
                return

        dtp = self.data_channel = self.dtp_handler(sock, self)
        completed = False
        try:
            if receive:
                dtp.receive_into(file)
            else:
                dtp.push_with_producer(producer)
        except _FileReadWriteError as err:
            resp = f"451 Error while reading/writing file: {strerror(err)}."
        except OSError as err:
            self.log(f"data connection error: {err}", logfun=logger.debug)
            resp = "426 Connection closed; transfer aborted."
        else:
            resp = done
            completed = True
        finally:
            dtp.close()
            self.data_channel = None
            if file is not None:
                file.close()

        self.log_transfer(
            cmd=cmd,
            filename=path,
            receive=receive,
            completed=completed,
            elapsed=dtp.get_elapsed_time(),
            bytes=dtp.get_transmitted_bytes(),
        )
        if cmd in ("RETR", "STOR"):
            if completed:
                hook = self.on_file_received if receive else self.on_file_sent
            elif receive:
                hook = self.on_incomplete_file_received
            else:
                hook = self.on_incomplete_file_sent
            hook(path)
        self.respond(resp)

    # --- logging wrappers

    def log(self, msg, logfun=logger.info):
        """Log a message, including additional identifying session data."""
        prefix = self.log_prefix % self.__dict__
        logfun(f"{prefix} {msg}")

    def logline(self, msg, logfun=logger.debug):
        """Log a line including additional identifying session data.
        By default this is disabled unless logging level == DEBUG.
        """
        if logger.getEffectiveLevel() <= logging.DEBUG:
            self.log(msg, logfun)

    def log_exception(self, instance):
        """Log an unhandled exception. 'instance' is the instance
        where the exception was generated.
        """
        logger.exception("unhandled exception in instance %r", instance)

    def log_transfer(self, cmd, filename, receive, completed, elapsed, bytes):
        """Log all file transfers in a standardized format.

         - (str) cmd:
            the original command who caused the transfer.

         - (str) filename:
            the absolutized name of the file on disk.

         - (bool) receive:
            True if the transfer was used for client uploading (STOR),
            False otherwise (RETR, LIST).

         - (bool) completed:
            True if the file has been entirely sent, else False.

         - (float) elapsed:
            transfer elapsed time in seconds.

         - (int) bytes:
            number of bytes transmitted.
        """
        line = "%s %s completed=%s bytes=%s seconds=%s" % (  # noqa: UP031
            cmd,
            filename,
            completed and 1 or 0,
            bytes,
            round(elapsed, 3),
        )
        self.log(line)

    # --- connection

    def _make_eport(self, ip, port, cmd):
        """Select active mode towards ip:port (PORT or EPRT)."""
        self._shutdown_dtp()
        self._dtp = self.active_dtp(ip, port, self)
        self.respond(f"200 {cmd} command successful.")

    def _make_epasv(self, extmode=False):
        """Initialize a passive data channel with remote client which
        issued a PASV or EPSV command.
        If extmode argument is True we assume that client issued EPSV in
        which case extended passive mode will be used (see RFC-2428).
        """
        # close the old listener, if any, before opening a new one
        self._shutdown_dtp()
        try:
            self._dtp = self.passive_dtp(self, extmode)
        except OSError as err:
            self.log(f"can't open passive data channel: {err}",
                     logfun=logger.warning)
            self.respond("425 Can't open passive data channel.")

    def ftp_PORT(self, line):
        """Start an active data channel by using IPv4."""
        # Parse PORT request for getting IP and PORT.
        # Request comes in as:
        # > h1,h2,h3,h4,p1,p2
        # ...where the client's IP address is h1.h2.h3.h4 and the TCP
        # port number is (p1 * 256) + p2.
        try:
            addr = list(map(int, line.split(",")))
            if len(addr) != 6:
                raise ValueError
            for x in addr:
                if not 0 <= x <= 255:
                    raise ValueError
            ip = "%d.%d.%d.%d" % tuple(addr[:4])  # noqa: UP031
            port = (addr[4] * 256) + addr[5]
        except (ValueError, OverflowError):
            self.respond("501 Invalid PORT format.")
            return
        self._make_eport(ip, port, "PORT")

    def ftp_EPRT(self, line):
        """Start an active data channel by choosing the network protocol
        to use (IPv4/IPv6) as defined in RFC-2428.
        """
        # Parse EPRT request for getting protocol, IP and PORT.
        # Request comes in as:
        # <d>proto<d>ip<d>port<d>
        # ...where <d> is an arbitrary delimiter character (usually "|") and
        # <proto> is the network protocol to use (1 for IPv4, 2 for IPv6).
        try:
            af, ip, port = line.split(line[0])[1:-1]
            port = int(port)
            if not 0 <= port <= 65535:
                raise ValueError
        except (ValueError, IndexError, OverflowError):
            self.respond("501 Invalid EPRT format.")
            return

        if af == "1":
            try:
                octs = list(map(int, ip.split(".")))
                if len(octs) != 4:
                    raise ValueError
                for x in octs:
                    if not 0 <= x <= 255:
                        raise ValueError
            except (ValueError, OverflowError):
                self.respond("501 Invalid EPRT format.")
            else:
                self._make_eport(ip, port, "EPRT")
        elif af == "2":
            if self.socket.family == socket.AF_INET:
                self.respond("522 Network protocol not supported (use 1).")
            else:
                self._make_eport(ip, port, "EPRT")
        elif self.socket.family == socket.AF_INET:
            self.respond("522 Unknown network protocol (use 1).")
        else:
            self.respond("522 Unknown network protocol (use 1 or 2).")

    def ftp_PASV(self, line):
        """Start a passive data channel by using IPv4."""
        if self.socket.family == socket.AF_INET6 and not (
            self.masquerade_address
            or self.socket.getsockname()[0].startswith("::ffff:")
        ):
            self.respond("425 PASV not available over IPv6; use EPSV.")
            return
        self._make_epasv(extmode=False)

    def ftp_EPSV(self, line):
        """Start a passive data channel by using IPv4 or IPv6 as defined
        in RFC-2428.
        """
        # RFC-2428 specifies that if an optional parameter is given,
        # we have to determine the address family from that otherwise
        # use the same address family used on the control connection.
        # In such a scenario a client may use IPv4 on the control channel
        # and choose to use IPv6 for the data channel.
        # But how could we use IPv6 on the data channel without knowing
        # which IPv6 address to use for binding the socket?
        # Unfortunately RFC-2428 does not provide satisfying information
        # on how to do that.  The assumption is that we don't have any way
        # to know which address to use, hence we just use the same address
        # family used on the control connection.
        if not line:
            self._make_epasv(extmode=True)
        elif line == "1" and self.socket.family == socket.AF_INET:
            self._make_epasv(extmode=True)
        elif line == "2" and self.socket.family == socket.AF_INET6:
            self._make_epasv(extmode=True)
        elif self.socket.family == socket.AF_INET:
            self.respond("522 Network protocol not supported (use 1).")
        else:
            self.respond("522 Network protocol not supported (use 2).")

    def ftp_QUIT(self, line):
        """Quit the current session disconnecting the client."""
        self.respond("221 Goodbye.")
        self._quit_pending = True

    # --- data transferring

    def ftp_LIST(self, path):
        """Return a list of files in the specified directory to the
        client, as produced by listing_provider.
        Defaults to the current working directory.
        """
        # some FTP clients (like Konqueror or Nautilus) erroneously
        # issue /bin/ls-like LIST formats (e.g. "LIST -l", "LIST -al")
        # instead of "LIST"; we ignore them.
        if path.lower() in _LIST_IGNORED_ARGS:
            path = ""
        fspath = self._resolve(path or self.fs.cwd)
        if fspath is None or not self.fs.isreadable(fspath):
            self.respond("550 No such file or directory.")
            return
        if not self._data_mode_negotiated():
            return
        try:
            lines = self.listing_provider(fspath)
        except (OSError, FilesystemError) as err:
            self.respond(f"550 {strerror(err)}.")
            return
        producer = LineProducer(lines, self.encoding, self.unicode_errors)
        self._transfer(
            "LIST",
            fspath,
            "150 Here comes the directory listing.",
            producer=producer,
            done="226 Directory send OK.",
        )

    def ftp_RETR(self, file):
        """Retrieve the specified file (transfer from the server to the
        client).
        """
        path = self._resolve(file)
        if path is None or not self.fs.isreadable(path):
            self.respond("550 No such file or directory.")
            return
        if not self.fs.isfile(path):
            self.respond(f"550 {file} is not retrievable.")
            return
        if not self._data_mode_negotiated():
            return
        try:
            size = self.fs.getsize(path)
            fd = self.fs.open(path, "rb")
        except (OSError, FilesystemError) as err:
            self.respond(f"550 {strerror(err)}.")
            return
        self._transfer(
            "RETR",
            path,
            f"150 Opening BINARY mode data connection for {file} "
            f"({size} bytes).",
            producer=FileProducer(fd),
            file=fd,
        )

    def ftp_STOR(self, file):
        """Store a file (transfer from the client to the server),
        overwriting any existing file with the same name.
        """
        path = self._resolve(file)
        if (
            path is None
            or self.fs.isdir(path)
            or not self.fs.isdir(os.path.dirname(path))
        ):
            self.respond("450 Requested file action not taken.")
            return
        if not self._data_mode_negotiated():
            return
        # the target is truncated only once the data connection is up
        self._transfer(
            "STOR",
            path,
            f"150 Opening BINARY mode data connection for {file}.",
            opener=lambda: self.fs.open(path, "wb"),
        )

    # --- authentication

    def ftp_USER(self, line):
        """Set the username for the current session. Any name is
        accepted.
        """
        self.username = line
        self.respond("331 Please specify the password.")

    def ftp_PASS(self, line):
        """Check username's password. Any password is accepted."""
        self.respond("230 Login successful.")

    # --- filesystem operations

    def ftp_PWD(self, line):
        """Return the name of the current working directory to the client."""
        # The 257 response is supposed to include the directory
        # name and in case it contains embedded double-quotes
        # they must be doubled (see RFC-959, chapter 7, appendix 2).
        cwd = self.fs.cwd
        self.respond(
            '257 "{}" is the current directory.'.format(cwd.replace('"', '""'))
        )

    def ftp_CWD(self, path):
        """Change the current working directory."""
        fspath = self._resolve(path)
        if fspath is None or not self.fs.isreadable(fspath):
            self.respond("550 Failed to change directory.")
            return
        try:
            self.fs.chdir(fspath)
        except (OSError, FilesystemError) as err:
            self.respond(f"550 {strerror(err)}.")
        else:
            self.respond("250 Directory successfully changed.")

    def ftp_SIZE(self, path):
        """Return size of file in a format suitable for using with
        RESTart as defined in RFC-3659."""
        fspath = self._resolve(path)
        if fspath is None or not self.fs.isreadable(fspath):
            self.respond("550 Could not get file size.")
            return
        if not self.fs.isfile(fspath):
            self.respond(f"550 {path} is not retrievable.")
            return
        try:
            size = self.fs.getsize(fspath)
        except (OSError, FilesystemError) as err:
            self.respond(f"550 {strerror(err)}.")
        else:
            self.respond(f"213 {size}")

    def ftp_DELE(self, path):
        """Delete the specified file."""
        fspath = self._resolve(path)
        if fspath is None or not self.fs.iswritable(fspath):
            self.respond("550 Deletion failed.")
            return
        try:
            self.fs.remove(fspath)
        except (OSError, FilesystemError) as err:
            self.respond(f"550 {strerror(err)}.")
        else:
            self.respond("250 File removed.")

    def ftp_RNFR(self, path):
        """Rename the specified (only the source name is specified
        here, see RNTO command)"""
        fspath = self._resolve(path)
        if fspath is None or not self.fs.iswritable(fspath):
            self.respond("550 No such file or directory.")
            return
        # a second RNFR replaces the pending one
        self._rename_state = RenamePending(fspath)
        self.respond("350 Ready for destination name.")

    def ftp_RNTO(self, path):
        """Rename file (destination name only, source is specified with
        RNFR).
        """
        state, self._rename_state = self._rename_state, RENAME_IDLE
        if not isinstance(state, RenamePending):
            self.respond("550 Bad sequence of commands: use RNFR first.")
            return
        fspath = self._resolve(path)
        if fspath is None:
            self.respond("550 Rename failed.")
            return
        try:
            self.fs.rename(state.path, fspath)
        except (OSError, FilesystemError) as err:
            self.respond(f"550 {strerror(err)}.")
        else:
            self.respond("250 Renaming ok.")

    # --- others

    def ftp_TYPE(self, line):
        """Set current type data type to binary/ascii. Transfers are
        binary-safe no matter the type.
        """
        # a bare TYPE selects the default image type
        type = line.upper().replace(" ", "") or "I"
        if type in ("A", "L7"):
            self._current_type = "a"
            self.respond("200 Type set to: ASCII.")
        elif type in ("I", "L8"):
            self._current_type = "i"
            self.respond("200 Type set to: Binary.")
        else:
            self._current_type = type.lower()
            self.respond(f"200 Type set to: {line}.")

    def ftp_STRU(self, line):
        """Set file structure; accepted and ignored."""
        self.respond(f"200 Structure set to: {line or 'F'}.")

    def ftp_MODE(self, line):
        """Set data transfer mode; accepted and ignored."""
        self.respond(f"200 Mode set to: {line or 'S'}.")

    def ftp_NOOP(self, line):
        """Do nothing."""
        self.respond("200 I successfully done nothin'.")

    def ftp_SYST(self, line):
        """Return system type (always returns UNIX type: L8)."""
        # This command is used to find out the type of operating system
        # at the server.  The reply shall have as its first word one of
        # the system names listed in RFC-943.
        # Since that we always return a "/bin/ls -lA"-like output on
        # LIST we  prefer to respond as if we would on Unix in any case.
        self.respond("215 UNIX Type: L8")
