"""
Error kinds raised by the build-and-deliver pipeline.
Every step failure is fatal to the single delivery attempt.
"""


class DeliveryError(Exception):
    """Base class for everything the pipeline raises"""


class InputError(DeliveryError):
    """File unreadable or recipient unusable"""


class InvalidAddress(InputError):
    pass


class ResolutionError(DeliveryError):
    """Domain has no usable mail exchanger"""


class ConnectError(DeliveryError):
    """TCP connection could not be established within the timeout"""


class ProtocolError(DeliveryError):
    """Remote server rejected a command, or the session broke mid-way"""

    def __init__(self, message: str, code: int = None, reply: str = None):
        super().__init__(message)
        self.code = code
        self.reply = reply


class TransferError(DeliveryError):
    """Fewer bytes accepted during DATA than were sent"""

    def __init__(self, written: int, expected: int):
        super().__init__(f"short write during DATA: {written} of {expected} bytes accepted")
        self.written = written
        self.expected = expected
