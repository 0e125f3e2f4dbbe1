"""Core value types: channel tags, match rules and listener parameters."""

from __future__ import annotations

import enum
import weakref
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

MessageCallback = Callable[["GameplayTag", Any], None]


class MessageMatch(enum.Enum):
    """Rule used to match a listener's channel against a broadcast channel."""

    # Registering for "A.B" matches a broadcast on A.B but not on A.B.C.
    EXACT_MATCH = enum.auto()
    # Registering for "A.B" matches broadcasts on A.B as well as A.B.C.
    PARTIAL_MATCH = enum.auto()


@dataclass(frozen=True)
class GameplayTag:
    """A hierarchical, dot-separated channel name such as ``"A.B.C"``.

    The empty tag is invalid and is the parent of every root tag.
    """

    name: str = ""

    def is_valid(self) -> bool:
        """Return True if the tag names a channel."""
        return bool(self.name)

    def request_direct_parent(self) -> GameplayTag:
        """Return the tag one level up, or the empty tag for a root tag."""
        parent, sep, _ = self.name.rpartition(".")
        return GameplayTag(parent) if sep else GameplayTag()

    def __str__(self) -> str:
        return self.name


@dataclass
class ListenerParams:
    """Advanced options for registering a typed message listener."""

    match_type: MessageMatch = MessageMatch.EXACT_MATCH
    on_message_received_callback: Optional[MessageCallback] = field(default=None)

    def set_message_received_callback(
        self, obj: Any, function: Callable[[Any, GameplayTag, Any], None]
    ) -> None:
        """Bind ``function(obj, channel, payload)`` holding only a weak reference to ``obj``.

        Once ``obj`` has been collected the callback silently does nothing.
        """
        weak_obj = weakref.ref(obj)

        def callback(channel: GameplayTag, payload: Any) -> None:
            strong = weak_obj()
            if strong is not None:
                function(strong, channel, payload)

        self.on_message_received_callback = callback