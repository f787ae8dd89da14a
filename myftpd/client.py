# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
A bare-bones interactive FTP client. Request lines typed by the user
are sent to the server as they are; replies (multi-line ones included)
are printed back. PORT, EPRT, PASV and EPSV set up the data
connection used by the following LIST, RETR and STOR commands.

$ myftp localhost 2121
myftp connected to localhost:2121.
220 myftpd ready.
% USER user
331 Please specify the password.
% EPSV
229 Entering extended passive mode (|||37813|).
% LIST
150 Here comes the directory listing.
-rw-r--r--   1 user     user          120 Mar 12 18:22 setup.py
226 Directory send OK.
% QUIT
221 Goodbye.
"""

import argparse
import ftplib
import os
import socket
import sys

from . import __ver__
from .__main__ import ColorHelpFormatter
from .log import debug
from .utils import term_supports_colors

__all__ = ["FTPClient"]

DEFAULT_PORT = 21
PROMPT = "% "


class FTPClient(ftplib.FTP):
    """An ftplib.FTP subclass driven by raw request lines.

     - (str) local_dir: the directory where RETR saves files and STOR
       reads them from. Defaults to the current working directory.

     - (file) out: where replies and listings are printed.
    """

    local_dir = None

    def __init__(self, timeout=None, out=None, **kwargs):
        super().__init__(timeout=timeout, **kwargs)
        self.out = sys.stdout if out is None else out
        # (host, port) to dial for the next transfer (passive mode)
        self._passive_addr = None
        # listening socket the server dials (active mode)
        self._listener = None

    def echo(self, text):
        self.out.write(text + "\n")
        self.out.flush()

    def request(self, line):
        """Send a request line and return the (possibly multi-line)
        reply, which is also printed.
        """
        self.putcmd(line)
        resp = self.getmultiline()
        self.echo(resp)
        return resp

    def handle_request(self, line):
        """Process a request line typed by the user.
        Return False once the session is over.
        """
        words = line.split()
        if not words:
            return True
        cmd = words[0]
        if cmd == "LIST" or (cmd in ("RETR", "STOR") and len(words) > 1):
            self._transfer(cmd, line, words[1:])
            return True

        resp = self.request(line)
        code = resp[:3]
        if cmd == "PORT" and code == "200":
            fields = words[1].split(",")
            self._listen(int(fields[4]) * 256 + int(fields[5]))
        elif cmd == "EPRT" and code == "200":
            fields = words[1][1:-1].split(words[1][0])
            self._listen(int(fields[2]))
        elif cmd == "PASV" and code == "227":
            _, port = ftplib.parse227(resp)
            self._set_passive((self.sock.getpeername()[0], port))
        elif cmd == "EPSV" and code == "229":
            self._set_passive(
                ftplib.parse229(resp, self.sock.getpeername())
            )
        elif cmd == "QUIT":
            self.close()
            return False
        return True

    # --- data connection

    def _set_passive(self, addr):
        self._close_listener()
        self._passive_addr = addr

    def _listen(self, port):
        self._close_listener()
        self._passive_addr = None
        family = self.sock.family
        listener = socket.create_server(("", port), family=family)
        listener.settimeout(self.timeout)
        self._listener = listener
        debug(f"listening for data connections on port {port}", self)

    def _close_listener(self):
        if self._listener is not None:
            self._listener.close()
            self._listener = None

    def _open_data_connection(self):
        if self._passive_addr is not None:
            return socket.create_connection(self._passive_addr, self.timeout)
        if self._listener is not None:
            conn, addr = self._listener.accept()
            conn.settimeout(self.timeout)
            debug(f"accepted data connection from {addr[0]}:{addr[1]}", self)
            return conn
        raise ftplib.Error("no data connection set up; use PORT or PASV")

    def _local_path(self, remote):
        local_dir = os.getcwd() if self.local_dir is None else self.local_dir
        return os.path.join(local_dir, os.path.basename(remote))

    def _transfer(self, cmd, line, args):
        source = None
        if cmd == "STOR":
            # fail before asking the server to truncate anything
            source = open(self._local_path(args[0]), "rb")
        try:
            resp = self.request(line)
            # the server sends its 150 before it dials or accepts
            if not resp.startswith("1"):
                return
            with self._open_data_connection() as conn:
                if cmd == "LIST":
                    self._recv_listing(conn)
                elif cmd == "RETR":
                    with open(self._local_path(args[0]), "wb") as f:
                        self._recv_file(conn, f)
                else:
                    conn.sendfile(source)
            self.echo(self.getmultiline())
        finally:
            if source is not None:
                source.close()

    def _recv_listing(self, conn):
        chunks = []
        while True:
            chunk = conn.recv(8192)
            if not chunk:
                break
            chunks.append(chunk)
        data = b"".join(chunks).decode(self.encoding, "replace")
        for line in data.splitlines():
            self.echo(line)

    def _recv_file(self, conn, file):
        while True:
            chunk = conn.recv(8192)
            if not chunk:
                break
            file.write(chunk)

    def close(self):
        self._close_listener()
        super().close()


def parse_args(args=None):
    usage = "myftp [options] [HOST [PORT]]"
    parser = argparse.ArgumentParser(
        usage=usage,
        description=main.__doc__,
        formatter_class=(
            ColorHelpFormatter
            if term_supports_colors()
            else argparse.HelpFormatter
        ),
    )
    parser.add_argument(
        "host",
        nargs="?",
        default="localhost",
        help="the host to connect to (default: localhost)",
    )
    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        default=DEFAULT_PORT,
        help=f"the port to connect to (default: {DEFAULT_PORT})",
    )
    parser.add_argument(
        "-d",
        "--directory",
        default=None,
        metavar="FOLDER",
        help=(
            "local directory where files are downloaded to and uploaded"
            " from (default: current directory)"
        ),
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=None,
        help="socket timeout in seconds (default: none)",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="print myftp version and exit",
    )
    return parser.parse_args(args=args)


def main(args=None):
    """Connect to an FTP server and send it the request lines typed
    on the console.
    """
    opts = parse_args(args=args)
    if opts.version:
        print(f"myftp {__ver__}")  # noqa: T201
        sys.exit(0)

    client = FTPClient(timeout=opts.timeout)
    client.local_dir = opts.directory
    try:
        welcome = client.connect(opts.host, opts.port)
    except OSError as err:
        print(f"socket error: {err}", file=sys.stderr)  # noqa: T201
        sys.exit(1)
    client.echo(f"myftp connected to {opts.host}:{opts.port}.")
    client.echo(welcome)

    try:
        while True:
            try:
                line = input(PROMPT)
            except (EOFError, KeyboardInterrupt):
                break
            try:
                if not client.handle_request(line):
                    break
            except EOFError:
                print(  # noqa: T201
                    "FTP error: connection closed by server", file=sys.stderr
                )
                break
            except ftplib.all_errors as err:
                print(f"FTP error: {err}", file=sys.stderr)  # noqa: T201
    finally:
        client.close()


if __name__ == "__main__":
    main()
