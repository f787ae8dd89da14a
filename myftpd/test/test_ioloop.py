# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import contextlib
import select
import socket
from unittest.mock import Mock

import pytest

import myftpd.ioloop
from myftpd.ioloop import Acceptor
from myftpd.ioloop import IOLoop
from myftpd.ioloop import Select

from . import HOST
from . import MyftpdTestCase
from . import call_until


class BaseIOLoopTestCase:

    ioloop_class = None

    def make_socketpair(self):
        rd, wr = socket.socketpair()
        self.addCleanup(rd.close)
        self.addCleanup(wr.close)
        return rd, wr

    def register(self):
        s = self.ioloop_class()
        self.addCleanup(s.close)
        rd, _ = self.make_socketpair()
        handler = Mock()
        s.register(rd.fileno(), handler, s.READ)
        assert rd.fileno() in s.socket_map
        return (s, rd)

    def test_unregister(self):
        s, rd = self.register()
        s.unregister(rd.fileno())
        assert rd.fileno() not in s.socket_map

    def test_unregister_twice(self):
        s, rd = self.register()
        s.unregister(rd.fileno())
        s.unregister(rd.fileno())

    def test_loop_empty_map(self):
        s = self.ioloop_class()
        self.addCleanup(s.close)
        # returns immediately
        s.loop(timeout=0.01, blocking=True)
        s.loop(timeout=0.01, blocking=False)

    def test_acceptor(self):
        accepted = []

        class Server(Acceptor):

            def handle_accepted(self, sock, addr):
                accepted.append(addr)
                sock.close()

        ioloop = self.ioloop_class()
        server = Server(ioloop=ioloop)
        self.addCleanup(ioloop.close)
        server.create_socket(socket.AF_INET, socket.SOCK_STREAM)
        server.set_reuse_addr()
        server.bind((HOST, 0))
        server.listen(5)
        assert len(ioloop.socket_map) == 1
        with contextlib.closing(
            socket.create_connection(server.socket.getsockname())
        ) as client:
            call_until(
                lambda: ioloop.loop(timeout=0.01, blocking=False) or accepted,
                "ret",
            )
            assert accepted[0] == client.getsockname()

    def test_close(self):
        ioloop = self.ioloop_class()
        server = Acceptor(ioloop=ioloop)
        server.create_socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind((HOST, 0))
        server.listen(5)
        ioloop.close()
        assert ioloop.socket_map == {}
        assert server.socket is None or server.socket.fileno() == -1


class SelectIOLoopTestCase(MyftpdTestCase, BaseIOLoopTestCase):
    ioloop_class = Select


@pytest.mark.skipif(not hasattr(select, "poll"), reason="poll() not available")
class PollIOLoopTestCase(MyftpdTestCase, BaseIOLoopTestCase):
    ioloop_class = getattr(myftpd.ioloop, "Poll", None)


class TestIOLoopInstance(MyftpdTestCase):

    def test_instance(self):
        inst = IOLoop.instance()
        assert IOLoop.instance() is inst
        inst.close()
        inst2 = IOLoop.instance()
        assert inst2 is not inst
        inst2.close()

    def test_bind_af_unspecified(self):
        server = Acceptor(ioloop=IOLoop())
        self.addCleanup(server.ioloop.close)
        af = server.bind_af_unspecified((HOST, 0))
        assert af == socket.AF_INET
        assert server.socket.getsockname()[0] == HOST
