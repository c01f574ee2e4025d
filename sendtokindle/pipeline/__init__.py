from .build import build, BuilderConfig, new_boundary
from .deliver import deliver, resolve_exchanger, split_domain, DelivererConfig, DeliveryResult
from .errors import DeliveryError, InputError, InvalidAddress, ResolutionError, ConnectError, ProtocolError, TransferError

__all__ = [name for name in globals() if not name.startswith('__')]
__version__ = "1.0.0"

"""
Core components: message building and direct SMTP delivery.
"""
