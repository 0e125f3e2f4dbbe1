"""A message router that lets broadcasters and listeners meet on tagged channels."""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .types import GameplayTag, ListenerParams, MessageMatch

logger = logging.getLogger(__name__)

RawCallback = Callable[[GameplayTag, Optional[type], Any], None]


@dataclass(eq=False)
class ListenerHandle:
    """Opaque handle used to remove a previously registered listener."""

    _subsystem_ref: Optional[weakref.ref] = field(default=None, repr=False)
    channel: GameplayTag = field(default_factory=GameplayTag)
    listener_id: int = 0

    @property
    def subsystem(self) -> Optional[MessageSubsystem]:
        """The subsystem that issued this handle, if it is still alive."""
        return self._subsystem_ref() if self._subsystem_ref is not None else None

    def is_valid(self) -> bool:
        """Return True if the handle refers to a registered listener."""
        return self.listener_id != 0

    def unregister(self) -> None:
        """Remove the listener and reset the handle, if its subsystem still exists."""
        subsystem = self.subsystem
        if subsystem is not None:
            subsystem.unregister_listener(self)
            self._subsystem_ref = None
            self.channel = GameplayTag()
            self.listener_id = 0


@dataclass
class _ListenerData:
    callback: RawCallback
    handle_id: int
    match_type: MessageMatch
    type_ref: Optional[weakref.ref]
    had_valid_type: bool

    @property
    def struct_type(self) -> Optional[type]:
        return self.type_ref() if self.type_ref is not None else None


@dataclass
class _ChannelListenerList:
    listeners: list[_ListenerData] = field(default_factory=list)
    handle_id: int = 0


class MessageSubsystem:
    """Routes messages broadcast on a channel to the listeners registered for it.

    Listeners and broadcasters must agree on the message type; a listener
    receives messages whose type is its registered type or a subclass of it.
    The call order of several listeners on one channel is not guaranteed.
    """

    def __init__(self, log_messages: bool = False) -> None:
        self.log_messages = log_messages
        self._listener_map: dict[GameplayTag, _ChannelListenerList] = {}

    def deinitialize(self) -> None:
        """Drop every registered listener."""
        self._listener_map.clear()

    def broadcast_message(self, channel: GameplayTag, message: Any) -> None:
        """Broadcast ``message`` on ``channel``; its type is taken from the message itself."""
        if message is None:
            raise TypeError("cannot broadcast None as a message")
        self._broadcast_internal(channel, type(message), message)

    def register_listener(
        self,
        channel: GameplayTag,
        callback: Callable[[GameplayTag, Any], None],
        message_type: type,
        match_type: MessageMatch = MessageMatch.EXACT_MATCH,
    ) -> ListenerHandle:
        """Call ``callback(channel, message)`` for messages of ``message_type`` on ``channel``."""

        def thunk(actual_tag: GameplayTag, sender_type: Optional[type], payload: Any) -> None:
            callback(actual_tag, payload)

        return self.register_untyped_listener(channel, thunk, message_type, match_type)

    def register_method_listener(
        self,
        channel: GameplayTag,
        obj: Any,
        method: Callable[[Any, GameplayTag, Any], None],
        message_type: type,
    ) -> ListenerHandle:
        """Call ``method(obj, channel, message)`` while ``obj`` is alive; ``obj`` is held weakly."""
        weak_obj = weakref.ref(obj)

        def callback(actual_tag: GameplayTag, payload: Any) -> None:
            strong = weak_obj()
            if strong is not None:
                method(strong, actual_tag, payload)

        return self.register_listener(channel, callback, message_type)

    def register_listener_with_params(
        self, channel: GameplayTag, params: ListenerParams, message_type: type
    ) -> ListenerHandle:
        """Register using ``params``; returns an invalid handle if no callback is bound."""
        if params.on_message_received_callback is None:
            return ListenerHandle()
        return self.register_listener(
            channel, params.on_message_received_callback, message_type, params.match_type
        )

    def register_untyped_listener(
        self,
        channel: GameplayTag,
        callback: RawCallback,
        message_type: Optional[type] = None,
        match_type: MessageMatch = MessageMatch.EXACT_MATCH,
    ) -> ListenerHandle:
        """Register ``callback(channel, message_type, message)``.

        With ``message_type`` None the listener accepts messages of any type.
        """
        channel_list = self._listener_map.setdefault(channel, _ChannelListenerList())
        channel_list.handle_id += 1
        channel_list.listeners.append(
            _ListenerData(
                callback=callback,
                handle_id=channel_list.handle_id,
                match_type=match_type,
                type_ref=weakref.ref(message_type) if message_type is not None else None,
                had_valid_type=message_type is not None,
            )
        )
        return ListenerHandle(weakref.ref(self), channel, channel_list.handle_id)

    def unregister_listener(self, handle: ListenerHandle) -> None:
        """Remove the listener that ``handle`` refers to."""
        if not handle.is_valid():
            logger.warning("Trying to unregister an invalid Handle.")
            return
        if handle.subsystem is not self:
            raise ValueError("handle belongs to a different message subsystem")
        self._unregister_internal(handle.channel, handle.listener_id)

    def _unregister_internal(self, channel: GameplayTag, handle_id: int) -> None:
        channel_list = self._listener_map.get(channel)
        if channel_list is None:
            return
        listeners = channel_list.listeners
        for index, listener in enumerate(listeners):
            if listener.handle_id == handle_id:
                listeners[index] = listeners[-1]
                listeners.pop()
                break
        if not listeners:
            del self._listener_map[channel]

    def _broadcast_internal(self, channel: GameplayTag, struct_type: type, message: Any) -> None:
        if self.log_messages:
            logger.info("BroadcastMessage(%s, %s, %r)", type(self).__name__, channel, message)

        on_initial_tag = True
        tag = channel
        while tag.is_valid():
            channel_list = self._listener_map.get(tag)
            if channel_list is not None:
                # Copy in case listeners are removed while handling callbacks.
                for listener in list(channel_list.listeners):
                    if not (on_initial_tag or listener.match_type is MessageMatch.PARTIAL_MATCH):
                        continue
                    listener_type = listener.struct_type
                    if listener.had_valid_type and listener_type is None:
                        logger.warning(
                            "Listener struct type has gone invalid on Channel %s. "
                            "Removing listener from list",
                            channel,
                        )
                        self._unregister_internal(channel, listener.handle_id)
                        continue
                    if not listener.had_valid_type or issubclass(struct_type, listener_type):
                        listener.callback(channel, struct_type, message)
                    else:
                        logger.error(
                            "Struct type mismatch on channel %s (broadcast type %s, "
                            "listener at %s was expecting type %s)",
                            channel,
                            struct_type.__qualname__,
                            tag,
                            listener_type.__qualname__,
                        )
            on_initial_tag = False
            tag = tag.request_direct_parent()