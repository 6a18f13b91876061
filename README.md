# otnode

The application layer of a Thread mesh node, in plain Python with no
third-party dependencies. It has four modules.

- `otnode.observers` holds the table of remote devices that subscribed to local URIs.
- `otnode.device_name` builds and takes apart full device names.
- `otnode.nvs` is a small string store indexed by one-byte key ids.
- `otnode.coap` is a CoAP node that serves resources and sends requests through a transport you supply.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Observers (`otnode.observers`)

`ObserverList(sender=None, max_subscribers=20, max_uris=5)` is a fixed-size
table of `Subscriber` entries. Each entry has a `device_name_full`, a 16-byte
`ip_addr` and `max_uris` `UriSubscription` slots. A slot holds a `uri_index`
and a 4-byte `token`.

- `subscribe(token, uri_index, ip_addr, device_name_full)` adds or refreshes a
  subscription. It returns `SubscribeResult` flags:
  - `DEVICE_ADDED` for a new device.
  - A combination of `IP_ADDR_UPDATED`, `TOKEN_UPDATED` and `URI_ADDED` for a
    known device.
  - `NO_CHANGE` when nothing changed.
- `unsubscribe(device_name_full, token)` drops the slot holding `token`. When
  the device has no taken slots left, the device is dropped too. It raises
  `ObserverError` for an unknown device and `TokenNotFound` for an unknown
  token.
- `notify(excluded_ip_addr, uri_index, data)` calls `sender(ip_addr, message)`
  for every subscriber of `uri_index` whose address differs from
  `excluded_ip_addr`, and returns how many there were.
- `clear()` empties the table.
- Lower-level slot helpers: `free_device_slot`, `take_device_slot`,
  `free_uri_slot`, `take_uri_slot`, `find_uri`, `find_token` and
  `find_device_name`.

A notification message is the token followed by the data, zero-padded to 256
bytes. `build_notify_message(token, data)` builds one.
`parse_notify_message(buffer)` returns a `DataPacket(token, data)`.

```python
from otnode.observers import ObserverList, SubscribeResult, parse_notify_message

sent = []
observers = ObserverList(sender=lambda addr, data: sent.append((addr, data)))

peer = bytes.fromhex("20010db8000000000000000000000001")
result = observers.subscribe(b"\xfa\x04\xb6\xd1", 2, peer, "sensor_1_0011223344556677")
assert result is SubscribeResult.DEVICE_ADDED

assert observers.notify(None, 2, b"\x01") == 1
packet = parse_notify_message(sent[0][1])
assert packet.token == b"\xfa\x04\xb6\xd1"
assert packet.data[0] == 1
```

## Device names (`otnode.device_name`)

A full device name has the form `<name>_<type>_<eui64 hex>`. The name part
may be at most 9 characters. The type must be a `DeviceType` other than
`NO_DEVICE`.

- `make_device_name_full(device_name, device_type, eui64)` builds a full name.
- `device_type_of(name)` returns the `DeviceType` encoded in a full name.
- `eui_of(name)` returns the text after the last underscore.
- `eui_is_same(name, eui)` compares that text with `eui`.
- `add_domain(name)` appends `.default.service.arpa.`. The name must be 20 to
  31 characters long.
- `host_name_to_device_name_full(host_name)` strips the domain again.

`DeviceIdentity(eui64)` holds this node's own name:

- `set_name(device_name, device_type)` sets the name and returns it.
- The `full_name` property is `None` until a name is set.
- `delete()` forgets the name.
- `full_is_same(name)` compares with the whole name.
- `base_is_same(name)` compares only the part before the first `_`.
- `is_matching(name)` is true for a different device that shares the name part.

Errors are `DeviceNameError` and its subclasses `DeviceNameTooLong` and
`DeviceNameTooShort`.

## String store (`otnode.nvs`)

`StringStore(path=None, capacity=4096)` keeps strings under key ids 0–255.
When `path` is given, the store is loaded from that JSON file and written
back to it after every change.

- `save_string(data, key_id)` stores a string. An empty string is kept as a
  cleared value, which reads back as `""`.
- `read_string(key_id, max_size=128)` returns the stored string.
- `delete_string(key_id)` removes the value.
- `key_id_shift(key_id)` gives the 16-bit record key used internally.

Errors are `NvsError`, `NvsKeyNotFound` and `NvsNoSpace`. `NvsNoSpace` is
raised when the stored bytes would exceed `capacity`.

## CoAP node (`otnode.coap`)

Messages are `CoapMessage` dataclasses with these fields: `code` (a
`CoapCode`), `type` (a `CoapType`), `uri_path`, `token`, `payload` and
`observe`.

`CoapNode(identity, observers, transport)` sends every outgoing message as
`transport(peer_addr_bytes, message)`. It serves five default resources:

| Path | Response |
| --- | --- |
| `.well-known/core` | Link list of the resources added with `add_resources` |
| `paring_services` | Passes the sender's name and address to `on_pair_request` |
| `subscribed_uris` | Passes the parsed `DataPacket` to `on_subscribed` |
| `test` | Answers `Hello coap !!` |
| `test/led` | Acknowledges a payload |

The `UriIndex` enum numbers these resources. `default_uri_name` and
`get_uri_name` look up their paths.

Dispatching incoming requests:

- `handle_request(message, peer_addr)` passes the request to the resource at
  its URI path.
- `process_uri_request(message, peer_addr, uri_index)` serves an observable
  resource:
  - A request with an observe option updates the observer list. Observe
    value 1 unsubscribes.
  - Any other request is acknowledged and forwarded to the observers of
    `uri_index`, excluding the sender.

Sending requests:

- `send(peer_addr, uri_path, code, payload=None, token=None, observe_state=None)`
  sends a confirmable request. With `observe_state=0` it generates and returns
  a fresh token.
- `send_subscribe_request` and `send_subscribe_update` send this node's full
  name as an observe request.
- `send_subscribed_uris` delivers a notification. This means it can serve as
  an `ObserverList` sender.
- `send_device_name` announces the name to `ff03::1`.

```python
from otnode.coap import CoapCode, CoapMessage, CoapNode
from otnode.device_name import DeviceIdentity, DeviceType
from otnode.observers import ObserverList

outbox = []
identity = DeviceIdentity(bytes(range(8)))
identity.set_name("lamp", DeviceType.LIGHT_ON_OFF)   # "lamp_3_0001020304050607"
observers = ObserverList()
node = CoapNode(identity, observers, lambda peer, msg: outbox.append((peer, msg)))
observers.sender = node.send_subscribed_uris

peer = bytes.fromhex("20010db8000000000000000000000002")
node.handle_request(CoapMessage(code=CoapCode.GET, uri_path="test"), peer)
assert outbox[0][1].code is CoapCode.CONTENT
assert outbox[0][1].payload == b"Hello coap !!"
```

## What the package does not do

- It has no network stack. It does not encode CoAP messages to bytes, open
  UDP sockets or join a Thread network. Moving `CoapMessage` objects is left
  to the `transport` callable.
- It does not discover services by DNS or SRP.
- It does not keep a list of paired devices. Pairing requests only reach the
  `on_pair_request` callback.
- It has no command-line tool.