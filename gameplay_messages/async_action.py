"""An action that listens for messages on a channel and re-broadcasts them to its own listeners."""

from __future__ import annotations

import copy
import weakref
from typing import Any, Callable, ClassVar, Optional

from .subsystem import ListenerHandle, MessageSubsystem
from .types import GameplayTag, MessageMatch

_NO_PAYLOAD = object()


class MessageDelegate:
    """A multicast delegate.

    Bound methods are held weakly and drop out of the delegate once their
    object has been collected. Plain functions are held strongly.
    """

    def __init__(self) -> None:
        self._entries: list[Callable[[], Optional[Callable[..., Any]]]] = []

    @staticmethod
    def _make_ref(callback: Callable[..., Any]) -> Callable[[], Optional[Callable[..., Any]]]:
        if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
            return weakref.WeakMethod(callback)
        return lambda: callback

    def _live(self) -> list[Callable[..., Any]]:
        live = []
        kept = []
        for ref in self._entries:
            target = ref()
            if target is not None:
                live.append(target)
                kept.append(ref)
        self._entries = kept
        return live

    def add(self, callback: Callable[..., Any]) -> None:
        """Bind ``callback``; binding the same callback twice has no effect."""
        if callback in self._live():
            return
        self._entries.append(self._make_ref(callback))

    def remove(self, callback: Callable[..., Any]) -> None:
        """Unbind ``callback``; raises ValueError if it is not bound."""
        for ref in self._entries:
            if ref() == callback:
                self._entries.remove(ref)
                return
        raise ValueError("callback is not bound to this delegate")

    def broadcast(self, *args: Any) -> None:
        """Call every live bound callback with ``args``."""
        for callback in self._live():
            callback(*args)

    def is_bound(self) -> bool:
        """Return True if at least one live callback is bound."""
        return bool(self._live())


class ListenForMessagesAction:
    """Waits for messages on a channel and raises ``on_message_received`` for each one.

    Inside an ``on_message_received`` handler, :meth:`get_payload` returns a copy
    of the message being delivered.
    """

    # Keeps actions alive between creation and set_ready_to_destroy.
    _registered: ClassVar[set[ListenForMessagesAction]] = set()

    def __init__(
        self,
        subsystem: MessageSubsystem,
        channel: GameplayTag,
        payload_type: Optional[type] = None,
        match_type: MessageMatch = MessageMatch.EXACT_MATCH,
    ) -> None:
        self.on_message_received = MessageDelegate()
        self.channel = channel
        self.match_type = match_type
        self._subsystem_ref = weakref.ref(subsystem)
        self._type_ref = weakref.ref(payload_type) if payload_type is not None else None
        self._received_payload: Any = _NO_PAYLOAD
        self._listener_handle = ListenerHandle()
        self._ready_to_destroy = False

    @classmethod
    def listen(
        cls,
        subsystem: Optional[MessageSubsystem],
        channel: GameplayTag,
        payload_type: Optional[type] = None,
        match_type: MessageMatch = MessageMatch.EXACT_MATCH,
    ) -> Optional[ListenForMessagesAction]:
        """Create an action for ``channel``; returns None when there is no subsystem."""
        if subsystem is None:
            return None
        action = cls(subsystem, channel, payload_type, match_type)
        cls._registered.add(action)
        return action

    @property
    def message_type(self) -> Optional[type]:
        """The expected payload type, or None if any type is accepted."""
        return self._type_ref() if self._type_ref is not None else None

    @property
    def ready_to_destroy(self) -> bool:
        """True once the action has stopped listening."""
        return self._ready_to_destroy

    @property
    def listener_handle(self) -> ListenerHandle:
        """Handle of the listener registered by :meth:`activate`."""
        return self._listener_handle

    def activate(self) -> None:
        """Start listening; if the subsystem is gone the action is finished at once."""
        subsystem = self._subsystem_ref()
        if subsystem is None:
            self.set_ready_to_destroy()
            return

        weak_self = weakref.ref(self)

        def on_message(channel: GameplayTag, struct_type: Optional[type], payload: Any) -> None:
            strong = weak_self()
            if strong is not None:
                strong._handle_message_received(channel, struct_type, payload)

        self._listener_handle = subsystem.register_untyped_listener(
            self.channel, on_message, self.message_type, self.match_type
        )

    def set_ready_to_destroy(self) -> None:
        """Stop listening and release the action."""
        self._listener_handle.unregister()
        self._ready_to_destroy = True
        type(self)._registered.discard(self)

    def get_payload(self, payload_type: type) -> Optional[Any]:
        """Return a copy of the message being delivered if ``payload_type`` matches it.

        Returns None outside a delivery, or when ``payload_type`` is not exactly
        the payload type the action listens for.
        """
        expected = self.message_type
        if (
            payload_type is not None
            and expected is not None
            and payload_type is expected
            and self._received_payload is not _NO_PAYLOAD
        ):
            return copy.deepcopy(self._received_payload)
        return None

    def _handle_message_received(
        self, channel: GameplayTag, struct_type: Optional[type], payload: Any
    ) -> None:
        expected = self.message_type
        if expected is None or expected is struct_type:
            self._received_payload = payload
            try:
                self.on_message_received.broadcast(self, channel)
            finally:
                self._received_payload = _NO_PAYLOAD

        if not self.on_message_received.is_bound():
            # The owner of every handler is gone, so nobody can hear us any more.
            self.set_ready_to_destroy()