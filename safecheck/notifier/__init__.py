from .dispatcher import AlertDispatcher, DispatchResult, normalize_phone
from .transport import DisabledTransport, NotificationTransport, ResendTransport, build_transport

__all__ = [
    "AlertDispatcher",
    "DispatchResult",
    "normalize_phone",
    "DisabledTransport",
    "NotificationTransport",
    "ResendTransport",
    "build_transport",
]
