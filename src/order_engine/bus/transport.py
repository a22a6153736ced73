"""
Notification transports

A transport moves raw JSON messages between named channels. The bus only
depends on the Transport interface; LocalTransport delivers in-process.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable, Dict, List

from loguru import logger

from ..errors import TransportUnavailableError


MessageHandler = Callable[[str, str], None]


class Transport(ABC):
    """Publish/subscribe transport for raw string messages"""

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether the transport can currently carry messages"""

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    async def publish(self, channel: str, message: str) -> int:
        """
        Deliver a message to every handler on the channel.

        Returns the number of handlers reached.

        Raises:
            TransportUnavailableError: transport is not connected
        """

    @abstractmethod
    def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """
        Raises:
            TransportUnavailableError: transport is not connected
        """

    @abstractmethod
    def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        pass


class LocalTransport(Transport):
    """In-process transport; handlers run synchronously inside publish()"""

    def __init__(self):
        self._connected = False
        self._handlers: Dict[str, List[MessageHandler]] = defaultdict(list)

    @property
    def available(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False
        self._handlers.clear()

    async def publish(self, channel: str, message: str) -> int:
        if not self._connected:
            raise TransportUnavailableError("Transport is not connected")

        handlers = list(self._handlers.get(channel, ()))
        for handler in handlers:
            try:
                handler(channel, message)
            except Exception as e:
                logger.error(f"Handler error on {channel}: {e}")
        return len(handlers)

    def subscribe(self, channel: str, handler: MessageHandler) -> None:
        if not self._connected:
            raise TransportUnavailableError("Transport is not connected")
        self._handlers[channel].append(handler)

    def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        handlers = self._handlers.get(channel)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._handlers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))
