# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
myftpd: a minimal RFC-959 FTP server.

myftpd serves a single directory tree to any client (USER and PASS
always succeed) and confines every file operation to it. A hierarchy
of classes outlined below implement the backend functionality for the
FTPd:

    [myftpd.servers.FTPServer]
      accepts connections and runs each of them in its own thread,
      using a fresh handler instance.

    [myftpd.handlers.FTPHandler]
      a class representing the server-protocol-interpreter
      (server-PI, see RFC-959). It reads request lines from the
      control connection, dispatches them to ftp_* methods and holds
      the session state (working directory, pending rename, data
      channel mode).

    [myftpd.dispatchers.ActiveDTP]
    [myftpd.dispatchers.PassiveDTP]
      classes establishing the data connection, either by dialing
      the client (PORT/EPRT) or by accepting from a listening socket
      (PASV/EPSV).

    [myftpd.handlers.DTPHandler]
      this class handles processing of data transfer operations
      (server-DTP, see RFC-959).

    [myftpd.filesystems.AbstractedFS]
      class used to interact with the file system; it maps client
      pathnames to real ones and rejects any path escaping the
      server root.

    [myftpd.listings.LsListing]
      produces the LIST output by running "ls -l".

Usage example:

>>> from myftpd.handlers import FTPHandler
>>> from myftpd.servers import FTPServer
>>>
>>> server = FTPServer(("127.0.0.1", 2121), FTPHandler, root="/srv/ftp")
>>> server.serve_forever()
[I 24-03-12 18:22:05] >>> starting FTP server on 127.0.0.1:2121, pid=7421 <<<
[I 24-03-12 18:22:05] concurrency model: multi-thread
[I 24-03-12 18:22:05] masquerade (NAT) address: None
[I 24-03-12 18:22:05] passive ports: None
[I 24-03-12 18:22:05] serving directory: /srv/ftp
[I 24-03-12 18:22:07] 127.0.0.1:50302 FTP session opened (connect)
[I 24-03-12 18:22:07] 127.0.0.1:50302 <- USER anonymous
[I 24-03-12 18:22:07] 127.0.0.1:50302 <- PASS ******
[I 24-03-12 18:22:09] 127.0.0.1:50302 <- PASV
[I 24-03-12 18:22:09] 127.0.0.1:50302 <- RETR secret.txt
[I 24-03-12 18:22:09] 127.0.0.1:50302 RETR /srv/ftp/secret.txt completed=1 bytes=1024 seconds=0.001
[I 24-03-12 18:22:11] 127.0.0.1:50302 <- QUIT
[I 24-03-12 18:22:11] 127.0.0.1:50302 FTP session closed (disconnect).
"""

__ver__ = "0.1.0"
__author__ = "Giampaolo Rodola' <g.rodola@gmail.com>"
__web__ = "https://github.com/giampaolo/pyftpdlib/"
