"""
Command channel between the canvas controller and the remote authority.

The channel carries named messages in both directions and preserves order
per direction. A request and its confirmation are never assumed to be
adjacent: other events may be delivered in between.

QueuedChannel is the in-process implementation. Messages sit in FIFO queues
until pump() delivers them, which keeps delivery on the caller's thread (the
NiceGUI app pumps from a ui.timer). Handler failures are logged and do not
stop delivery of later messages.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from spatialgraph.engine import require_capabilities

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, Dict[str, Any]], None]

CHANNEL_CAPABILITIES = ("send", "subscribe", "unsubscribe", "close")


@runtime_checkable
class CommandChannel(Protocol):
    """What the controller needs from a channel."""

    def send(self, name: str, payload: Dict[str, Any]) -> None:
        """Fire-and-forget an outbound request."""
        ...

    def subscribe(self, handler: MessageHandler) -> None:
        """Register a handler for inbound events, called as handler(name, payload)."""
        ...

    def unsubscribe(self, handler: MessageHandler) -> None:
        ...

    def close(self) -> None:
        ...


def require_channel(channel) -> None:
    require_capabilities(channel, CHANNEL_CAPABILITIES, f"Command channel {type(channel).__name__}")


@dataclass
class ChannelStats:
    """Counters for the status indicator and tests."""
    requests_sent: int = 0
    events_delivered: int = 0
    error_count: int = 0
    last_error: Optional[str] = None


class QueuedChannel:
    """
    Ordered, pump-driven channel.

    Client side: send() / subscribe().
    Authority side: on_request() / publish().

    Callback events (via on()):
    - 'request': outbound request delivered, handler(name, payload)
    - 'event': inbound event delivered, handler(name, payload)
    - 'error': a handler raised, handler(name, payload) with payload {'message': ...}
    """

    def __init__(self, name: str = "canvas"):
        self.name = name
        self._outbound: Deque[Tuple[str, Dict[str, Any]]] = deque()
        self._inbound: Deque[Tuple[str, Dict[str, Any]]] = deque()
        self._callbacks: Dict[str, List[MessageHandler]] = {
            'request': [],
            'event': [],
            'error': [],
        }
        self._closed = False
        self.stats = ChannelStats()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._outbound) + len(self._inbound)

    # --- Registration ---

    def on(self, event: str, callback: MessageHandler) -> None:
        if event in self._callbacks and callback not in self._callbacks[event]:
            self._callbacks[event].append(callback)

    def off(self, event: str, callback: MessageHandler) -> None:
        if event in self._callbacks and callback in self._callbacks[event]:
            self._callbacks[event].remove(callback)

    def subscribe(self, handler: MessageHandler) -> None:
        self.on('event', handler)

    def unsubscribe(self, handler: MessageHandler) -> None:
        self.off('event', handler)

    def on_request(self, handler: MessageHandler) -> None:
        self.on('request', handler)

    # --- Sending ---

    def send(self, name: str, payload: Dict[str, Any]) -> None:
        if self._closed:
            logger.warning(f"[{self.name}] channel closed, dropping request '{name}'")
            return
        self._outbound.append((name, dict(payload)))
        self.stats.requests_sent += 1
        logger.debug(f"[{self.name}] -> {name} {payload}")

    def publish(self, name: str, payload: Optional[Dict[str, Any]] = None) -> None:
        if self._closed:
            logger.debug(f"[{self.name}] channel closed, dropping event '{name}'")
            return
        self._inbound.append((name, dict(payload or {})))

    # --- Delivery ---

    def pump(self, max_messages: Optional[int] = None) -> int:
        """
        Deliver queued messages until both queues are empty.

        Requests handled here may publish events; those are delivered in the
        same call. Returns the number of messages delivered.
        """
        delivered = 0
        while self._outbound or self._inbound:
            if max_messages is not None and delivered >= max_messages:
                break
            if self._outbound:
                name, payload = self._outbound.popleft()
                self._emit('request', name, payload)
            else:
                name, payload = self._inbound.popleft()
                self._emit('event', name, payload)
                self.stats.events_delivered += 1
            delivered += 1
        return delivered

    def _emit(self, kind: str, name: str, payload: Dict[str, Any]) -> None:
        for callback in list(self._callbacks.get(kind, [])):
            try:
                callback(name, payload)
            except Exception as e:
                logger.error(f"[{self.name}] error in {kind} handler for '{name}': {e}")
                self.stats.error_count += 1
                self.stats.last_error = str(e)
                if kind != 'error':
                    self._emit('error', name, {'message': str(e)})

    def close(self) -> None:
        self._closed = True
        self._outbound.clear()
        self._inbound.clear()
        for handlers in self._callbacks.values():
            handlers.clear()
        logger.info(f"[{self.name}] channel closed")
