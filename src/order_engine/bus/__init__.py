from .transport import Transport, LocalTransport, MessageHandler
from .notification_bus import NotificationBus, Subscription, Unsubscribe

__all__ = [
    'Transport',
    'LocalTransport',
    'MessageHandler',
    'NotificationBus',
    'Subscription',
    'Unsubscribe',
]
