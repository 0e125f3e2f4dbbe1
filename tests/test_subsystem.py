import gc
import logging
from dataclasses import dataclass

import pytest

from gameplay_messages.subsystem import ListenerHandle, MessageSubsystem
from gameplay_messages.types import GameplayTag, ListenerParams, MessageMatch

AB = GameplayTag("A.B")
ABC = GameplayTag("A.B.C")


@dataclass
class Msg:
    value: int = 0


@dataclass
class DerivedMsg(Msg):
    extra: str = ""


@dataclass
class OtherMsg:
    text: str = ""


@pytest.fixture
def subsystem():
    return MessageSubsystem()


def test_exact_listener_receives_same_channel(subsystem):
    received = []
    subsystem.register_listener(AB, lambda ch, m: received.append((ch, m)), Msg)
    subsystem.broadcast_message(AB, Msg(5))
    assert received == [(AB, Msg(5))]


def test_exact_listener_ignores_child_channel(subsystem):
    received = []
    subsystem.register_listener(AB, lambda ch, m: received.append(m), Msg)
    subsystem.broadcast_message(ABC, Msg(5))
    assert received == []


def test_partial_listener_receives_child_channel_with_actual_tag(subsystem):
    received = []
    subsystem.register_listener(
        AB, lambda ch, m: received.append((ch, m)), Msg, MessageMatch.PARTIAL_MATCH
    )
    subsystem.broadcast_message(ABC, Msg(7))
    assert received == [(ABC, Msg(7))]


def test_type_mismatch_is_not_delivered_and_logged(subsystem, caplog):
    received = []
    subsystem.register_listener(AB, lambda ch, m: received.append(m), Msg)
    with caplog.at_level(logging.ERROR, logger="gameplay_messages.subsystem"):
        subsystem.broadcast_message(AB, OtherMsg("x"))
    assert received == []
    assert any("Struct type mismatch" in r.getMessage() for r in caplog.records)


def test_subclass_message_reaches_base_listener(subsystem):
    received = []
    subsystem.register_listener(AB, lambda ch, m: received.append(m), Msg)
    subsystem.broadcast_message(AB, DerivedMsg(1, "e"))
    assert received == [DerivedMsg(1, "e")]


def test_untyped_listener_receives_any_type(subsystem):
    received = []
    subsystem.register_untyped_listener(AB, lambda ch, t, m: received.append((t, m)))
    subsystem.broadcast_message(AB, OtherMsg("x"))
    assert received == [(OtherMsg, OtherMsg("x"))]


def test_handle_ids_increase_per_channel(subsystem):
    first = subsystem.register_listener(AB, lambda ch, m: None, Msg)
    second = subsystem.register_listener(AB, lambda ch, m: None, Msg)
    assert first.is_valid() and second.is_valid()
    assert second.listener_id == first.listener_id + 1
    assert first.channel == AB
    assert first.subsystem is subsystem


def test_handle_unregister_stops_delivery_and_resets(subsystem):
    received = []
    handle = subsystem.register_listener(AB, lambda ch, m: received.append(m), Msg)
    handle.unregister()
    subsystem.broadcast_message(AB, Msg(1))
    assert received == []
    assert not handle.is_valid()
    assert handle.channel == GameplayTag()
    assert handle.subsystem is None


def test_unregister_invalid_handle_logs_warning(subsystem, caplog):
    with caplog.at_level(logging.WARNING, logger="gameplay_messages.subsystem"):
        subsystem.unregister_listener(ListenerHandle())
    assert any("invalid Handle" in r.getMessage() for r in caplog.records)


def test_unregister_foreign_handle_raises(subsystem):
    other = MessageSubsystem()
    handle = other.register_listener(AB, lambda ch, m: None, Msg)
    with pytest.raises(ValueError):
        subsystem.unregister_listener(handle)


def test_handle_unregister_after_subsystem_gone_keeps_handle(subsystem):
    handle = MessageSubsystem().register_listener(AB, lambda ch, m: None, Msg)
    gc.collect()
    handle.unregister()
    assert handle.is_valid()
    assert handle.subsystem is None


def test_listener_list_is_recreated_after_emptying(subsystem):
    first = subsystem.register_listener(AB, lambda ch, m: None, Msg)
    first_id = first.listener_id
    first.unregister()
    again = subsystem.register_listener(AB, lambda ch, m: None, Msg)
    assert again.listener_id == first_id


def test_removal_during_broadcast_uses_snapshot(subsystem):
    calls = []
    handles = {}

    def first(ch, m):
        calls.append("first")
        if "second" in handles:
            handles.pop("second").unregister()

    subsystem.register_listener(AB, first, Msg)
    handles["second"] = subsystem.register_listener(
        AB, lambda ch, m: calls.append("second"), Msg
    )
    subsystem.broadcast_message(AB, Msg())
    assert sorted(calls) == ["first", "second"]
    calls.clear()
    subsystem.broadcast_message(AB, Msg())
    assert calls == ["first"]


class _Owner:
    def __init__(self):
        self.seen = []

    def handle(self, channel, payload):
        self.seen.append((channel, payload))


def test_method_listener_calls_live_owner(subsystem):
    owner = _Owner()
    subsystem.register_method_listener(AB, owner, _Owner.handle, Msg)
    subsystem.broadcast_message(AB, Msg(3))
    assert owner.seen == [(AB, Msg(3))]


def test_method_listener_skips_collected_owner(subsystem):
    seen = []
    owner = _Owner()
    subsystem.register_method_listener(AB, owner, lambda o, ch, m: seen.append(m), Msg)
    del owner
    gc.collect()
    subsystem.broadcast_message(AB, Msg(3))
    assert seen == []


def test_params_without_callback_give_invalid_handle(subsystem):
    handle = subsystem.register_listener_with_params(AB, ListenerParams(), Msg)
    assert not handle.is_valid()


def test_params_with_partial_match(subsystem):
    received = []
    params = ListenerParams(
        match_type=MessageMatch.PARTIAL_MATCH,
        on_message_received_callback=lambda ch, m: received.append((ch, m)),
    )
    handle = subsystem.register_listener_with_params(AB, params, Msg)
    subsystem.broadcast_message(ABC, Msg(2))
    assert handle.is_valid()
    assert received == [(ABC, Msg(2))]


def test_deinitialize_drops_listeners(subsystem):
    received = []
    subsystem.register_listener(AB, lambda ch, m: received.append(m), Msg)
    subsystem.deinitialize()
    subsystem.broadcast_message(AB, Msg(1))
    assert received == []


def test_broadcast_none_raises(subsystem):
    with pytest.raises(TypeError):
        subsystem.broadcast_message(AB, None)


def test_log_messages_logs_broadcast(caplog):
    subsystem = MessageSubsystem(log_messages=True)
    with caplog.at_level(logging.INFO, logger="gameplay_messages.subsystem"):
        subsystem.broadcast_message(AB, Msg(9))
    assert any("BroadcastMessage" in r.getMessage() and "A.B" in r.getMessage()
               for r in caplog.records)


def test_listener_with_collected_type_is_removed(subsystem, caplog):
    received = []
    temp_type = type("Temp", (), {})
    first = subsystem.register_listener(AB, lambda ch, m: received.append(m), temp_type)
    first_id = first.listener_id
    del temp_type
    gc.collect()
    with caplog.at_level(logging.WARNING, logger="gameplay_messages.subsystem"):
        subsystem.broadcast_message(AB, Msg(1))
    assert received == []
    assert any("gone invalid" in r.getMessage() for r in caplog.records)
    again = subsystem.register_listener(AB, lambda ch, m: None, Msg)
    assert again.listener_id == first_id