# gameplay-messages

A small in-process message bus where senders and receivers never refer to
each other directly. They agree only on a **channel**, a dotted hierarchical
tag such as `Game.Player.Damaged`, and on the **type** of the message sent on
it.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Channels and matching

`gameplay_messages.types.GameplayTag` names a channel. An empty tag is
invalid. `request_direct_parent()` walks up one level: `A.B.C` becomes `A.B`,
then `A`, then the empty tag.

A listener registers with a `MessageMatch`:

* `MessageMatch.EXACT_MATCH` (the default) receives only broadcasts on
  exactly its channel. A listener on `A.B` hears `A.B` but not `A.B.C`.
* `MessageMatch.PARTIAL_MATCH` also receives broadcasts on any channel below
  its own. A listener on `A.B` hears both `A.B` and `A.B.C`.

Listeners are always called with the channel the message was actually
broadcast on.

## Broadcasting and listening

```python
from dataclasses import dataclass

from gameplay_messages.types import GameplayTag, MessageMatch
from gameplay_messages.subsystem import MessageSubsystem


@dataclass
class Damage:
    amount: int


bus = MessageSubsystem()

def on_damage(channel, message):
    print(channel, message.amount)

handle = bus.register_listener(
    GameplayTag("Game.Player"), on_damage, Damage, MessageMatch.PARTIAL_MATCH
)

bus.broadcast_message(GameplayTag("Game.Player.Damaged"), Damage(5))

handle.unregister()
```

`broadcast_message` takes the message type from the message itself and raises
`TypeError` if the message is `None`. A typed listener receives a message only
when the message's type is its registered type or a subclass of it. Otherwise
an error is logged and that listener is skipped. Message types are held
weakly. If a listener's type has been garbage-collected, the listener is
removed with a warning the next time a broadcast reaches it.

Other ways to register:

* `register_method_listener(channel, obj, method, message_type)` calls
  `method(obj, channel, message)` and keeps only a weak reference to `obj`.
  It does nothing once `obj` has been collected. It always uses exact
  matching.
* `register_listener_with_params(channel, params, message_type)` takes a
  `ListenerParams`, which has `match_type` and `on_message_received_callback`.
  You can set the callback directly, or with
  `set_message_received_callback(obj, function)`, which holds `obj` weakly.
  If no callback is set, the method returns an invalid handle.
* `register_untyped_listener(channel, callback, message_type=None,
  match_type=...)` calls `callback(channel, message_type, message)`. With
  `message_type=None` it receives messages of every type.

A `ListenerHandle` has `channel`, `listener_id`, `subsystem` and
`is_valid()`. You can remove its listener either with `handle.unregister()`,
which also resets the handle, or with `bus.unregister_listener(handle)`.
Passing an invalid handle to `unregister_listener` logs a warning. Passing a
handle from another subsystem raises `ValueError`. `deinitialize()` drops
every listener.

The order in which listeners on the same channel are called is not
guaranteed.

## Listening through an action

`gameplay_messages.async_action.ListenForMessagesAction` wraps a listener in
an object that exposes a `MessageDelegate` as `on_message_received`. The
delegate is called with `(action, actual_channel)`. While it runs,
`get_payload(payload_type)` returns a deep copy of the message being
delivered. It returns `None` outside a delivery, or when `payload_type` is not
exactly the type the action listens for.

```python
from gameplay_messages.async_action import ListenForMessagesAction

action = ListenForMessagesAction.listen(
    bus, GameplayTag("Game.Player"), Damage, MessageMatch.PARTIAL_MATCH
)

def received(proxy, actual_channel):
    payload = proxy.get_payload(Damage)
    if payload is not None:
        print(actual_channel, payload.amount)

action.on_message_received.add(received)
action.activate()
```

Some details of how actions behave:

* `listen` returns `None` when given no subsystem. The action it creates
  stays alive until `set_ready_to_destroy()` is called.
* `activate()` registers the listener. If the subsystem has already been
  collected, the action finishes at once.
* An action created with a payload type forwards only messages of exactly
  that type. An action created without one forwards every message.
* `MessageDelegate` supports `add`, `remove` (which raises `ValueError` if the
  callback is not bound), `broadcast` and `is_bound`. It holds bound methods
  weakly and plain functions strongly. Adding the same callback twice has no
  effect.
* If nothing is left bound to the delegate when a message arrives, the
  action calls `set_ready_to_destroy()` on itself. You can call it yourself
  at any time to stop listening. After that, `ready_to_destroy` is `True`.

## Logging

Warnings and type mismatches are reported through the standard `logging`
module under the `gameplay_messages.subsystem` logger. Create the bus with
`MessageSubsystem(log_messages=True)` to also log every broadcast at INFO
level.

## What it does not do

The bus is synchronous and lives in one process. Broadcasting calls the
listeners directly, in the calling thread. The package does not do any of
the following:

* queue or store messages
* deliver messages across threads, processes or a network
* provide a command-line tool