# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.


import functools
import logging
import os
import shutil
import socket
import stat
import tempfile
import threading
import time
import unittest
import warnings

import psutil

from myftpd.handlers import FTPHandler
from myftpd.servers import FTPServer

HERE = os.path.realpath(os.path.abspath(os.path.dirname(__file__)))
ROOT_DIR = os.path.realpath(os.path.join(HERE, "..", ".."))

POSIX = os.name == "posix"
WINDOWS = os.name == "nt"


GITHUB_ACTIONS = "GITHUB_ACTIONS" in os.environ or "CIBUILDWHEEL" in os.environ
CI_TESTING = GITHUB_ACTIONS

# Attempt to use IP rather than hostname (test suite will run a lot faster)
try:
    HOST = socket.gethostbyname("localhost")
except OSError:
    HOST = "localhost"

USER = "user"
PASSWD = "12345"
HOME = os.getcwd()
# Use PID to disambiguate file name for parallel testing.
TESTFN_PREFIX = f"myftpd-tmp-{os.getpid()}-"
GLOBAL_TIMEOUT = 2

if CI_TESTING:
    GLOBAL_TIMEOUT *= 3


class MyftpdTestCase(unittest.TestCase):
    """All test classes inherit from this one."""

    def setUp(self):
        super().setUp()
        reset_server_opts()

    def __str__(self):
        # Print a full path representation of the single unit tests
        # being run.
        fqmod = self.__class__.__module__
        if not fqmod.startswith("myftpd."):
            fqmod = "myftpd.test." + fqmod
        return f"{fqmod}.{self.__class__.__name__}.{self._testMethodName}"

    def get_testfn(self, suffix="", dir=None):
        fname = get_testfn(suffix=suffix, dir=dir)
        self.addCleanup(safe_rmpath, fname)
        return fname


def close_client(session):
    """Closes a ftplib.FTP client session."""
    try:
        if session.sock is not None:
            try:
                resp = session.quit()
            except Exception:
                pass
            else:
                # ...just to make sure the server isn't replying to some
                # pending command.
                assert resp.startswith("221"), resp
    finally:
        session.close()


def get_testfn(suffix="", dir=None):
    """Return an absolute pathname of a file or dir that did not
    exist at the time this call is made. Also schedule it for safe
    deletion at interpreter exit. It's technically racy but probably
    not really due to the time variant.
    """
    if dir is None:
        dir = os.getcwd()
    while True:
        name = tempfile.mktemp(prefix=TESTFN_PREFIX, suffix=suffix, dir=dir)
        if not os.path.exists(name):  # also include dirs
            return os.path.basename(name)


def safe_rmpath(path):
    """Convenience function for removing temporary test files or dirs."""

    def retry_fun(fun):
        # On Windows it could happen that the file or directory has
        # open handles or references preventing the delete operation
        # to succeed immediately, so we retry for a while. See:
        # https://bugs.python.org/issue33240
        stop_at = time.time() + GLOBAL_TIMEOUT
        while time.time() < stop_at:
            try:
                return fun()
            except FileNotFoundError:
                pass
            except OSError as _:
                err = _
                warnings.warn(f"ignoring {err!s}", UserWarning, stacklevel=2)
            time.sleep(0.01)
        raise err

    try:
        st = os.lstat(path)
        if stat.S_ISDIR(st.st_mode):
            fun = functools.partial(shutil.rmtree, path)
        else:
            fun = functools.partial(os.remove, path)
        if POSIX:
            fun()
        else:
            retry_fun(fun)
    except FileNotFoundError:
        pass


def touch(name, data=b""):
    """Create a file and return its name."""
    with open(name, "wb") as f:
        f.write(data)
        return f.name


def disable_log_warning(fun):
    """Temporarily set FTP server's logging level to ERROR."""

    @functools.wraps(fun)
    def wrapper(self, *args, **kwargs):
        logger = logging.getLogger("myftpd")
        level = logger.getEffectiveLevel()
        logger.setLevel(logging.ERROR)
        try:
            return fun(self, *args, **kwargs)
        finally:
            logger.setLevel(level)

    return wrapper


def call_until(fun, expr, timeout=GLOBAL_TIMEOUT):
    """Keep calling function for timeout secs and exit if eval()
    expression is True.
    """
    stop_at = time.time() + timeout
    while time.time() < stop_at:
        ret = fun()
        if eval(expr):
            return ret
        time.sleep(0.001)
    raise RuntimeError(f"timed out (ret={ret!r})")


def get_server_handler(server):
    """Return the first FTPHandler instance served by server."""
    handlers = call_until(
        lambda: list(server._active_handlers), "len(ret) > 0"
    )
    return handlers[0]


def setup_server(handler, server_class, addr=None, root=None):
    addr = (HOST, 0) if addr is None else addr
    # lower buffer sizes = more "loops" while transferring data
    # = less false positives
    handler.dtp_handler.ac_in_buffer_size = 4096
    server = server_class(addr, handler, root=HOME if root is None else root)
    return server


def assert_free_resources(parent_pid=None):
    # check orphaned threads
    ts = [x for x in threading.enumerate() if x.name.startswith("ftpd-")]
    assert not ts, ts
    this_proc = psutil.Process(parent_pid or os.getpid())
    # check unclosed connections
    if POSIX:
        cons = [
            x
            for x in this_proc.net_connections("tcp")
            if x.status != psutil.CONN_CLOSE_WAIT
        ]
        if cons:
            warnings.warn(
                f"some connections didn't close (pid={os.getpid()!r})"
                f" {str(cons)!r}",
                UserWarning,
                stacklevel=2,
            )


def reset_server_opts():
    # Since all myftpd configurable "options" are class attributes
    # we reset them at module.class level.
    import myftpd.dispatchers  # noqa: PLC0415
    import myftpd.handlers  # noqa: PLC0415
    import myftpd.servers  # noqa: PLC0415

    # Control handler.
    klass = myftpd.handlers.FTPHandler
    klass.banner = "myftpd ready."
    klass.masquerade_address = None
    klass.max_line_length = 2048
    klass.passive_ports = None
    klass.tcp_no_delay = hasattr(socket, "TCP_NODELAY")
    klass.timeout = 300
    klass.unicode_errors = "replace"
    klass.use_sendfile = hasattr(os, "sendfile")
    klass.encoding = "utf8"
    klass.listing_provider = myftpd.handlers.default_listing_provider()

    # Data handlers.
    myftpd.handlers.DTPHandler.timeout = 300
    myftpd.handlers.DTPHandler.ac_in_buffer_size = 4096
    myftpd.dispatchers.PassiveDTP.timeout = GLOBAL_TIMEOUT * 3
    myftpd.dispatchers.ActiveDTP.timeout = GLOBAL_TIMEOUT * 3

    # Acceptors.
    myftpd.servers.FTPServer.max_cons = 0
    myftpd.servers.FTPServer.max_cons_per_ip = 0


class FtpdThreadWrapper(threading.Thread):
    """A threaded FTP server used for running tests.
    The acceptor loop is wrapped into a thread (each session still
    gets a thread of its own).
    The instance returned can be start()ed and stop()ped.
    """

    handler = FTPHandler
    server_class = FTPServer
    poll_interval = 0.001 if CI_TESTING else 0.000001
    # Makes the thread stop on interpreter exit.
    daemon = True

    def __init__(self, addr=None, root=None):
        self.parent_pid = os.getpid()
        super().__init__(name="test-ftpd")
        self.server = setup_server(
            self.handler, self.server_class, addr=addr, root=root
        )
        self.host, self.port = self.server.socket.getsockname()[:2]

        self.lock = threading.Lock()
        self._stop_flag = False
        self._event_stop = threading.Event()

    def run(self):
        try:
            while not self._stop_flag:
                with self.lock:
                    self.server.serve_forever(
                        timeout=self.poll_interval, blocking=False
                    )
        finally:
            self._event_stop.set()

    def stop(self):
        self._stop_flag = True  # signal the main loop to exit
        self._event_stop.wait()
        self.server.close_all()
        self.join()
        reset_server_opts()
        assert_free_resources(self.parent_pid)
