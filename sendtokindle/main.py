"""
Complete send-to-kindle workflow: read file, build message, deliver it.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional, Union

from .pipeline import (
    build, deliver, resolve_exchanger, split_domain,
    BuilderConfig, DelivererConfig, DeliveryResult, InputError
)

logger = logging.getLogger(__name__)

@dataclass
class Attachment:
    name: str
    content: bytes

def read_attachment(file_path: Union[str, Path]) -> Attachment:
    """Read the whole file into memory; the attachment name is its base name"""
    path = Path(file_path)
    try:
        content = path.read_bytes()
    except OSError as e:
        raise InputError(f"reading {file_path}: {e.strerror or e}") from e
    logger.debug(f"Read {len(content)} bytes from {path}")
    return Attachment(name=path.name, content=content)

def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    """Set up logging with appropriate verbosity level"""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler()]

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    # Suppress INFO/WARNING logs from noisy libraries
    logging.getLogger('dns').setLevel(logging.ERROR)

    return logging.getLogger(__name__)

def send_file(recipient: str, file_path: Union[str, Path],
              message_config: Optional[BuilderConfig] = None,
              deliver_config: Optional[DelivererConfig] = None) -> DeliveryResult:
    """
    Send one file to one recipient.

    Raises a DeliveryError subclass on the first failing step; never exits.
    """
    attachment = read_attachment(file_path)
    message = build(recipient, attachment.name, attachment.content, message_config)
    logger.info(f"Sending {attachment.name} ({len(attachment.content)} bytes) to {recipient}")
    return deliver(recipient, message, deliver_config)

def dry_run(recipient: str, file_path: Union[str, Path],
            message_config: Optional[BuilderConfig] = None) -> tuple[int, str]:
    """Build the message and resolve the exchanger without connecting; returns (message size, exchanger)"""
    attachment = read_attachment(file_path)
    message = build(recipient, attachment.name, attachment.content, message_config)
    host = resolve_exchanger(split_domain(recipient))
    logger.info(f"Dry run: {len(message)} byte message for {recipient} would go to {host}")
    return len(message), host
