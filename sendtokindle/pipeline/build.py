"""
MIME message construction for a single file attachment.
Produces the exact bytes sent after the SMTP DATA command.
"""

import secrets
import logging
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Optional
from email.mime.multipart import MIMEMultipart
from email.mime.base import MIMEBase
from email import encoders
from email.policy import compat32
from email.utils import format_datetime, make_msgid

logger = logging.getLogger(__name__)

# CRLF everywhere, as required on the wire
SMTP_POLICY = compat32.clone(linesep="\r\n")

@dataclass
class BuilderConfig:
    from_header: str = "Send To Kindle <sendtokindle@localhost>"
    subject: str = "For kindle"
    message_id_domain: str = "localhost"

def new_boundary() -> str:
    """28 hex characters, same shape as f403043895ccc776c6055e8fae42"""
    return secrets.token_hex(14)

def _attachment_part(file_name: str, file_bytes: bytes) -> MIMEBase:
    part = MIMEBase("application", "octet-stream", name=file_name)
    part.set_payload(file_bytes)
    encoders.encode_base64(part)
    part.add_header("Content-Disposition", "attachment", filename=file_name)

    attachment_id = secrets.token_hex(10)
    part["X-Attachment-Id"] = attachment_id
    part["Content-ID"] = f"<{attachment_id}>"
    return part

def build(recipient: str, file_name: str, file_bytes: bytes,
          config: Optional[BuilderConfig] = None, boundary: Optional[str] = None) -> bytes:
    """
    Frame file_bytes as the only part of a multipart/mixed message addressed to recipient.

    file_name must already be a base name; it is used for both the name and
    filename parameters. A fresh boundary and Date are generated per call
    unless boundary is given.
    """
    config = config or BuilderConfig()
    boundary = boundary or new_boundary()

    msg = MIMEMultipart("mixed", boundary=boundary)
    msg["Message-ID"] = make_msgid(domain=config.message_id_domain)
    msg["Date"] = format_datetime(datetime.now(timezone.utc))
    msg["Subject"] = config.subject
    msg["From"] = config.from_header
    msg["To"] = recipient
    msg.attach(_attachment_part(file_name, file_bytes))

    data = msg.as_bytes(policy=SMTP_POLICY)
    logger.debug(f"Built message for {recipient}: {file_name}, {len(file_bytes)} bytes raw, {len(data)} bytes framed")
    return data
