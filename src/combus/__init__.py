"""ComBus - request/reply correlation over an in-process broadcast bus.

Key concepts:
- Envelope: the {issuer, type, payload} record carried through the bus
- Issuer: a per-call reply channel name
- dispatch: publish a call and await the first reply on its issuer channel
- listen: answer every call on a channel with the handler's result
"""

from .bus import ComBus, dispatch, get_bus, listen, reset
from .call import CallState, DispatchTimeoutError, PendingCall
from .config import BusConfig
from .envelope import Envelope, create_envelope, create_issuer
from .transport import Subscription, Transport

__all__ = [
    "BusConfig",
    "CallState",
    "ComBus",
    "DispatchTimeoutError",
    "Envelope",
    "PendingCall",
    "Subscription",
    "Transport",
    "create_envelope",
    "create_issuer",
    "dispatch",
    "get_bus",
    "listen",
    "reset",
]
