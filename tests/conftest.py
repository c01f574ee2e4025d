import importlib
import socket
import threading

import pytest
import dns.name
import dns.resolver

deliver_module = importlib.import_module("sendtokindle.pipeline.deliver")


class DummyMX:
    def __init__(self, host, preference=10):
        self.exchange = dns.name.from_text(host)
        self.preference = preference


class DummySocket:
    def __init__(self, accept_limit=None):
        self.accept_limit = accept_limit
        self.received = b""

    def send(self, data):
        data = bytes(data)
        if self.accept_limit is not None:
            room = self.accept_limit - len(self.received)
            data = data[:max(room, 0)]
        self.received += data
        return len(data)


class DummySMTP:
    """Records the command sequence; replies are overridable per command"""

    def __init__(self, local_hostname=None, timeout=None, replies=None, connect_error=None, accept_limit=None):
        self.local_hostname = local_hostname
        self.timeout = timeout
        self.replies = replies or {}
        self.connect_error = connect_error
        self.accept_limit = accept_limit
        self.commands = []
        self.sock = None
        self.closed = 0
        self.sent = b""

    def connect(self, host, port):
        self.commands.append(("connect", host, port))
        if self.connect_error is not None:
            raise self.connect_error
        self.sock = DummySocket(self.accept_limit)
        return 220, b"ready"

    def ehlo_or_helo_if_needed(self):
        self.commands.append(("ehlo", self.local_hostname))
        if "ehlo" in self.replies:
            raise self.replies["ehlo"]

    def mail(self, sender):
        self.commands.append(("mail", sender))
        return self.replies.get("mail", (250, b"OK"))

    def rcpt(self, recipient):
        self.commands.append(("rcpt", recipient))
        return self.replies.get("rcpt", (250, b"OK"))

    def docmd(self, cmd, args=""):
        self.commands.append((cmd.lower(),))
        return self.replies.get(cmd.lower(), (354, b"go ahead"))

    def send(self, data):
        self.sent += data

    def getreply(self):
        self.commands.append(("end",))
        return self.replies.get("end", (250, b"queued"))

    def quit(self):
        self.commands.append(("quit",))
        return self.replies.get("quit", (221, b"bye"))

    def close(self):
        self.closed += 1

    def command_names(self):
        return [c[0] for c in self.commands]


class SMTPFactory:
    """Stands in for IPv4SMTP; every session it creates shares these settings"""

    def __init__(self):
        self.created = []
        self.replies = {}
        self.connect_error = None
        self.accept_limit = None

    def __call__(self, local_hostname=None, timeout=None):
        smtp = DummySMTP(local_hostname, timeout, self.replies, self.connect_error, self.accept_limit)
        self.created.append(smtp)
        return smtp

    @property
    def last(self):
        return self.created[-1]


class DummyResolver:
    """Domain -> MX hosts in answer order; unknown domains are NXDOMAIN"""

    def __init__(self):
        self.hosts = {"example.com": ["mx1.example.com.", "mx2.example.com."]}
        self.lookups = []

    def resolve(self, domain, rdtype):
        self.lookups.append((domain, rdtype))
        if domain not in self.hosts:
            raise dns.resolver.NXDOMAIN()
        return [DummyMX(host, 10 * (i + 1)) for i, host in enumerate(self.hosts[domain])]


@pytest.fixture
def resolver(monkeypatch):
    fake = DummyResolver()
    monkeypatch.setattr(deliver_module.dns.resolver, "resolve", fake.resolve)
    return fake


@pytest.fixture
def smtp_factory(monkeypatch):
    factory = SMTPFactory()
    monkeypatch.setattr(deliver_module, "IPv4SMTP", factory)
    return factory


class LocalSMTPServer:
    """One-connection SMTP server on 127.0.0.1 that records the wire transcript"""

    def __init__(self, replies=None):
        self.replies = replies or {}
        self.lines = []
        self.data = b""
        self.client_closed = False
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.listener.settimeout(5)
        self.port = self.listener.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _reply(self, conn, verb, default):
        conn.sendall(self.replies.get(verb, default) + b"\r\n")

    def _serve(self):
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        with conn, conn.makefile("rb") as rfile:
            conn.settimeout(5)
            conn.sendall(self.replies.get("greeting", b"220 local ready") + b"\r\n")
            while True:
                line = rfile.readline()
                if not line:
                    break
                self.lines.append(line)
                verb = line.split(b" ", 1)[0].split(b":", 1)[0].strip().upper()
                if verb == b"EHLO":
                    self._reply(conn, "ehlo", b"250-local\r\n250 8BITMIME")
                elif verb == b"HELO":
                    self._reply(conn, "helo", b"250 local")
                elif verb == b"MAIL":
                    self._reply(conn, "mail", b"250 sender ok")
                elif verb == b"RCPT":
                    self._reply(conn, "rcpt", b"250 recipient ok")
                elif verb == b"DATA":
                    self._reply(conn, "data", b"354 end with <CRLF>.<CRLF>")
                    if not self.replies.get("data", b"354").startswith(b"354"):
                        continue
                    while True:
                        chunk = rfile.readline()
                        if not chunk:
                            return
                        self.data += chunk
                        if chunk == b".\r\n":
                            break
                    self._reply(conn, "end", b"250 queued")
                elif verb == b"QUIT":
                    self._reply(conn, "quit", b"221 bye")
                    self.client_closed = rfile.read() == b""
                    break
                else:
                    self._reply(conn, "other", b"502 not implemented")
            if not self.client_closed:
                self.client_closed = rfile.read() == b""

    def verbs(self):
        return [line.split(b" ", 1)[0].split(b":", 1)[0].strip().upper().decode() for line in self.lines]

    def close(self):
        """Wait for the session to finish; safe to call more than once"""
        self.thread.join(timeout=5)
        self.listener.close()


@pytest.fixture
def local_smtp(resolver):
    """Local SMTP server reachable as the MX of example.com"""
    servers = []

    def start(replies=None):
        server = LocalSMTPServer(replies)
        resolver.hosts["example.com"] = ["127.0.0.1."]
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.close()
