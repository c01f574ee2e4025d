"""
Direct SMTP delivery to the recipient domain's mail exchanger.
One connection, one message, no retries: every failure is raised to the caller.
"""

import re
import socket
import smtplib
import logging
from dataclasses import dataclass
from typing import Optional
import dns.resolver
import dns.exception

from .errors import InvalidAddress, ResolutionError, ConnectError, ProtocolError, TransferError

logger = logging.getLogger(__name__)

CRLF = b"\r\n"

@dataclass
class DeliveryResult:
    recipient: str
    exchanger: str
    bytes_written: int

@dataclass
class DelivererConfig:
    helo_name: str = "localhost"
    sender: str = "sendtokindle@localhost"
    port: int = 25
    timeout: float = 10.0

class IPv4SMTP(smtplib.SMTP):
    """smtplib.SMTP restricted to IPv4 transport"""

    # overrides the private hook SMTP.connect() calls to open its socket
    def _get_socket(self, host, port, timeout):
        if self.debuglevel > 0:
            self._print_debug('connect: to', (host, port), self.source_address)
        last_error = None
        for family, socktype, proto, _, address in socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_STREAM):
            sock = socket.socket(family, socktype, proto)
            try:
                sock.settimeout(timeout)
                if self.source_address:
                    sock.bind(self.source_address)
                sock.connect(address)
                return sock
            except OSError as e:
                sock.close()
                last_error = e
        raise last_error or OSError(f"no IPv4 address for {host}")

def split_domain(recipient: str) -> str:
    """Return the text after the last '@'"""
    at = recipient.rfind("@")
    if at < 0:
        raise InvalidAddress(f"address must contain @: {recipient}")
    domain = recipient[at + 1:]
    if not domain:
        raise InvalidAddress(f"address has an empty domain: {recipient}")
    try:
        # no SMTPUTF8: envelope addresses must be plain ASCII
        recipient.encode("ascii")
    except UnicodeEncodeError as e:
        raise InvalidAddress(f"address must be ASCII: {recipient}") from e
    return domain

def resolve_exchanger(domain: str) -> str:
    """
    Look up MX records for domain and return the first host, as returned.

    Records are deliberately not re-sorted by preference.
    """
    try:
        answers = dns.resolver.resolve(domain, "MX")
    except dns.exception.DNSException as e:
        raise ResolutionError(f"MX lookup for {domain} failed: {e}") from e

    records = list(answers)
    if not records:
        raise ResolutionError(f"no MX records for {domain}")

    host = str(records[0].exchange).rstrip(".")
    if not host:
        # null MX (RFC 7505): domain accepts no mail
        raise ResolutionError(f"{domain} publishes a null MX record")
    logger.debug(f"MX records for {domain}: {[str(r.exchange) for r in records]}")
    return host

def _quote_periods(message: bytes) -> bytes:
    """Dot-stuff and terminate the last line with CRLF"""
    data = re.sub(rb"(?m)^\.", b"..", message)
    if not data.endswith(CRLF):
        data += CRLF
    return data

def _write_data(smtp: smtplib.SMTP, payload: bytes) -> int:
    """Write payload to the session socket; returns how many bytes were accepted"""
    view = memoryview(payload)
    written = 0
    while written < len(payload):
        n = smtp.sock.send(view[written:])
        if not n:
            break
        written += n
    return written

def _expect(reply, accepted, step: str):
    code, text = reply
    if code not in accepted:
        text = text.decode("utf-8", "replace") if isinstance(text, bytes) else str(text)
        raise ProtocolError(f"{step} rejected: {code} {text}", code=code, reply=text)

def deliver(recipient: str, message: bytes, config: Optional[DelivererConfig] = None) -> DeliveryResult:
    """
    Send one built message to recipient through its domain's mail exchanger.

    Steps: parse domain, resolve MX, connect, EHLO/HELO, MAIL FROM, RCPT TO,
    DATA, end of data, QUIT. The connection is closed on every path once opened.
    """
    config = config or DelivererConfig()

    domain = split_domain(recipient)
    host = resolve_exchanger(domain)
    logger.info(f"Delivering to {recipient} via {host}:{config.port}")

    smtp = IPv4SMTP(local_hostname=config.helo_name, timeout=config.timeout)
    try:
        try:
            smtp.connect(host, config.port)
        except smtplib.SMTPConnectError as e:
            # TCP is up but the greeting was not 220
            raise ProtocolError(f"greeting from {host} rejected: {e.smtp_code} {e.smtp_error!r}", code=e.smtp_code) from e
        except smtplib.SMTPServerDisconnected as e:
            raise ProtocolError(f"{host} closed the connection before greeting: {e}") from e
        except OSError as e:
            raise ConnectError(f"connecting to {host}:{config.port}: {e}") from e
        logger.debug(f"Connected to {host}:{config.port}")

        try:
            smtp.ehlo_or_helo_if_needed()
            _expect(smtp.mail(config.sender), (250,), "MAIL FROM")
            _expect(smtp.rcpt(recipient), (250, 251), "RCPT TO")
            _expect(smtp.docmd("DATA"), (354,), "DATA")

            payload = _quote_periods(message)
            written = _write_data(smtp, payload)
            if written < len(payload):
                raise TransferError(written, len(payload))
            logger.debug(f"Wrote {written} bytes of message data")

            smtp.send(b"." + CRLF)
            _expect(smtp.getreply(), (250,), "end of DATA")
            _expect(smtp.quit(), (221,), "QUIT")
        except smtplib.SMTPHeloError as e:
            raise ProtocolError(f"handshake with {host} rejected: {e.smtp_code} {e.smtp_error!r}", code=e.smtp_code) from e
        except (smtplib.SMTPException, OSError, UnicodeEncodeError) as e:
            raise ProtocolError(f"session with {host} failed: {e}") from e
    finally:
        smtp.close()

    logger.info(f"Delivered {written} bytes to {recipient}")
    return DeliveryResult(recipient=recipient, exchanger=host, bytes_written=written)
