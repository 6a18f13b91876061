"""Subscriber list for observable CoAP URIs.

Keeps a fixed-size table of remote devices that subscribed to local
resources. Each device has a fixed number of URI slots, each holding
the URI index and the observe token of the subscription. Notification
messages are the token followed by a fixed-size, zero-padded payload.
"""

from __future__ import annotations

import enum
import ipaddress
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Union

TOKEN_LENGTH = 4
BUFFER_SIZE = 256
TX_BUFFER_SIZE = TOKEN_LENGTH + BUFFER_SIZE
DEVICE_NAME_FULL_SIZE = 32
IP6_ADDRESS_SIZE = 16
SUBSCRIBERS_MAX_NUM = 20
PAIRED_URI_MAX = 5

IpAddr = Union[bytes, bytearray, ipaddress.IPv6Address]
Sender = Callable[[bytes, bytes], None]


class ObserverError(Exception):
    """Invalid argument or inconsistent state in the observer list."""


class ObserverListFull(ObserverError):
    """No free slot is left for a device or a URI."""


class TokenNotFound(ObserverError):
    """The device has no subscription with the given token."""


class SubscribeResult(enum.IntFlag):
    """What a subscribe request changed in the list."""

    NO_CHANGE = 0
    IP_ADDR_UPDATED = 1
    TOKEN_UPDATED = 2
    URI_ADDED = 4
    DEVICE_ADDED = 8


@dataclass
class UriSubscription:
    """One subscribed URI of a device."""

    uri_index: int = 0
    token: bytes = bytes(TOKEN_LENGTH)
    taken: bool = False


@dataclass
class Subscriber:
    """A subscribing device and its URI slots."""

    uris: list[UriSubscription]
    device_name_full: str = ""
    ip_addr: bytes = bytes(IP6_ADDRESS_SIZE)
    taken: bool = False


@dataclass(frozen=True)
class DataPacket:
    """A parsed notification: the observe token and the padded payload."""

    token: bytes
    data: bytes


def _ip_bytes(ip_addr: Optional[IpAddr]) -> bytes:
    if ip_addr is None:
        raise ObserverError("IPv6 address is missing")
    if isinstance(ip_addr, ipaddress.IPv6Address):
        return ip_addr.packed
    raw = bytes(ip_addr)
    if len(raw) != IP6_ADDRESS_SIZE:
        raise ObserverError(f"IPv6 address must be {IP6_ADDRESS_SIZE} bytes")
    return raw


def _token_bytes(token: Optional[bytes]) -> bytes:
    if token is None:
        raise ObserverError("token is missing")
    raw = bytes(token)
    if len(raw) != TOKEN_LENGTH:
        raise ObserverError(f"token must be {TOKEN_LENGTH} bytes")
    return raw


def _check_name(device_name_full: Optional[str]) -> str:
    if device_name_full is None:
        raise ObserverError("device name is missing")
    if len(device_name_full) >= DEVICE_NAME_FULL_SIZE:
        raise ObserverError("device name is too long")
    return device_name_full


def build_notify_message(token: bytes, data: bytes) -> bytes:
    """Return the token followed by data zero-padded to BUFFER_SIZE."""
    token = _token_bytes(token)
    if data is None:
        raise ObserverError("data is missing")
    data = bytes(data)
    if len(data) > BUFFER_SIZE:
        raise ObserverError("data does not fit in the notify buffer")
    return token + data.ljust(BUFFER_SIZE, b"\0")


def parse_notify_message(buffer: bytes) -> DataPacket:
    """Split a notification message into its token and payload."""
    if buffer is None:
        raise ObserverError("buffer is missing")
    raw = bytes(buffer)
    token = raw[:TOKEN_LENGTH].ljust(TOKEN_LENGTH, b"\0")
    data = raw[TOKEN_LENGTH:TOKEN_LENGTH + BUFFER_SIZE].ljust(BUFFER_SIZE, b"\0")
    return DataPacket(token=token, data=data)


class ObserverList:
    """Fixed-size table of devices subscribed to local URIs."""

    def __init__(
        self,
        sender: Optional[Sender] = None,
        max_subscribers: int = SUBSCRIBERS_MAX_NUM,
        max_uris: int = PAIRED_URI_MAX,
    ) -> None:
        if max_subscribers <= 0 or max_uris <= 0:
            raise ObserverError("list sizes must be positive")
        self.sender = sender
        self.max_subscribers = max_subscribers
        self.max_uris = max_uris
        self.subscribers: list[Subscriber] = []
        self.clear()

    def __len__(self) -> int:
        return len(self.subscribers)

    def __getitem__(self, dev_id: int) -> Subscriber:
        return self.subscribers[dev_id]

    def __iter__(self) -> Iterator[Subscriber]:
        return iter(self.subscribers)

    def _check_dev(self, dev_id: int) -> None:
        if not 0 <= dev_id < self.max_subscribers:
            raise ObserverError(f"device index {dev_id} out of range")

    def _check_uri(self, uri_id: int) -> None:
        if not 0 <= uri_id < self.max_uris:
            raise ObserverError(f"URI index {uri_id} out of range")

    def _new_subscriber(self) -> Subscriber:
        return Subscriber(uris=[UriSubscription() for _ in range(self.max_uris)])

    def clear(self) -> None:
        """Remove every subscriber."""
        self.subscribers = [self._new_subscriber() for _ in range(self.max_subscribers)]

    # device slots

    def free_device_slot(self) -> int:
        """Return the first free device slot."""
        for dev_id, sub in enumerate(self.subscribers):
            if not sub.taken:
                return dev_id
        raise ObserverListFull("no free device slot")

    def device_slot_taken(self, dev_id: int) -> bool:
        self._check_dev(dev_id)
        return self.subscribers[dev_id].taken

    def take_device_slot(self, dev_id: int) -> None:
        if self.device_slot_taken(dev_id):
            raise ObserverError(f"device slot {dev_id} already taken")
        self.subscribers[dev_id].taken = True

    # uri slots

    def free_uri_slot(self, dev_id: int) -> int:
        """Return the first free URI slot of a device."""
        self._check_dev(dev_id)
        for uri_id, uri in enumerate(self.subscribers[dev_id].uris):
            if not uri.taken:
                return uri_id
        raise ObserverListFull("no free URI slot")

    def uri_slot_taken(self, dev_id: int, uri_id: int) -> bool:
        self._check_dev(dev_id)
        self._check_uri(uri_id)
        return self.subscribers[dev_id].uris[uri_id].taken

    def take_uri_slot(self, dev_id: int, uri_id: int) -> None:
        if self.uri_slot_taken(dev_id, uri_id):
            raise ObserverError(f"URI slot {uri_id} already taken")
        self.subscribers[dev_id].uris[uri_id].taken = True

    def find_uri(self, dev_id: int, uri_index: int) -> Optional[int]:
        """Return the slot holding uri_index, or None."""
        self._check_dev(dev_id)
        for uri_id, uri in enumerate(self.subscribers[dev_id].uris):
            if uri.uri_index == uri_index:
                return uri_id
        return None

    # stores

    def save_device_name(self, dev_id: int, device_name_full: str) -> None:
        self._check_dev(dev_id)
        self.subscribers[dev_id].device_name_full = _check_name(device_name_full)

    def save_ip_addr(self, dev_id: int, ip_addr: IpAddr) -> None:
        self._check_dev(dev_id)
        self.subscribers[dev_id].ip_addr = _ip_bytes(ip_addr)

    def save_uri_index(self, dev_id: int, uri_id: int, uri_index: int) -> None:
        self._check_dev(dev_id)
        self._check_uri(uri_id)
        self.subscribers[dev_id].uris[uri_id].uri_index = uri_index

    def save_token(self, dev_id: int, uri_id: int, token: bytes) -> None:
        token = _token_bytes(token)
        self._check_dev(dev_id)
        self._check_uri(uri_id)
        self.subscribers[dev_id].uris[uri_id].token = token

    def add_device(self, device_name_full: str, ip_addr: IpAddr) -> int:
        """Store a new device in the first free slot and return its index."""
        _check_name(device_name_full)
        raw_ip = _ip_bytes(ip_addr)
        dev_id = self.free_device_slot()
        self.save_device_name(dev_id, device_name_full)
        self.save_ip_addr(dev_id, raw_ip)
        self.take_device_slot(dev_id)
        return dev_id

    def add_uri(self, dev_id: int, token: bytes, uri_index: int) -> int:
        """Store a new URI subscription for a device and return its slot."""
        token = _token_bytes(token)
        uri_id = self.free_uri_slot(dev_id)
        self.save_uri_index(dev_id, uri_id, uri_index)
        self.save_token(dev_id, uri_id, token)
        self.take_uri_slot(dev_id, uri_id)
        return uri_id

    # lookups

    def token_is_same(self, dev_id: int, uri_id: int, token: bytes) -> bool:
        if token is None:
            raise ObserverError("token is missing")
        self._check_dev(dev_id)
        self._check_uri(uri_id)
        return self.subscribers[dev_id].uris[uri_id].token == bytes(token)

    def find_token(self, dev_id: int, token: bytes) -> Optional[int]:
        """Return the taken URI slot of a device holding token, or None."""
        if token is None:
            raise ObserverError("token is missing")
        self._check_dev(dev_id)
        for uri_id in range(self.max_uris):
            if self.uri_slot_taken(dev_id, uri_id) and self.token_is_same(dev_id, uri_id, token):
                return uri_id
        return None

    def ip_addr_is_same(self, dev_id: int, ip_addr: IpAddr) -> bool:
        raw = _ip_bytes(ip_addr)
        self._check_dev(dev_id)
        return self.subscribers[dev_id].ip_addr == raw

    def device_name_is_same(self, dev_id: int, device_name_full: str) -> bool:
        _check_name(device_name_full)
        self._check_dev(dev_id)
        return self.subscribers[dev_id].device_name_full == device_name_full

    def find_device_name(self, device_name_full: str) -> Optional[int]:
        """Return the taken device slot with this name, or None."""
        _check_name(device_name_full)
        for dev_id, sub in enumerate(self.subscribers):
            if sub.taken and sub.device_name_full == device_name_full:
                return dev_id
        return None

    # operations

    def subscribe(
        self, token: bytes, uri_index: int, ip_addr: IpAddr, device_name_full: str
    ) -> SubscribeResult:
        """Add or refresh a subscription and report what changed."""
        if device_name_full is None:
            raise ObserverError("device name is missing")
        token = _token_bytes(token)
        raw_ip = _ip_bytes(ip_addr)
        if uri_index == 0:
            raise ObserverError("URI index 0 is not valid")
        if not any(raw_ip):
            raise ObserverError("IPv6 address is not set")
        if not any(token):
            raise ObserverError("token is not set")

        dev_id = self.find_device_name(device_name_full)
        if dev_id is None:
            dev_id = self.add_device(device_name_full, raw_ip)
            self.add_uri(dev_id, token, uri_index)
            return SubscribeResult.DEVICE_ADDED

        result = SubscribeResult.NO_CHANGE
        if not self.ip_addr_is_same(dev_id, raw_ip):
            self.save_ip_addr(dev_id, raw_ip)
            result |= SubscribeResult.IP_ADDR_UPDATED

        uri_id = self.find_uri(dev_id, uri_index)
        if uri_id is None:
            self.add_uri(dev_id, token, uri_index)
            result |= SubscribeResult.URI_ADDED
        elif not self.token_is_same(dev_id, uri_id, token):
            self.save_token(dev_id, uri_id, token)
            result |= SubscribeResult.TOKEN_UPDATED
        return result

    def unsubscribe(self, device_name_full: str, token: bytes) -> None:
        """Drop the subscription with token; drop the device if none remain."""
        if device_name_full is None or token is None:
            raise ObserverError("device name and token are required")
        dev_id = self.find_device_name(device_name_full)
        if dev_id is None:
            raise ObserverError(f"device {device_name_full!r} is not subscribed")
        uri_id = self.find_token(dev_id, token)
        if uri_id is None:
            raise TokenNotFound("token is not subscribed")

        sub = self.subscribers[dev_id]
        sub.uris[uri_id] = UriSubscription()
        if not any(uri.taken for uri in sub.uris):
            self.subscribers[dev_id] = self._new_subscriber()

    def notify(self, excluded_ip_addr: Optional[IpAddr], uri_index: int, data: bytes) -> int:
        """Send data to every subscriber of uri_index; return how many were sent."""
        if data is None:
            raise ObserverError("data is missing")
        if uri_index == 0:
            raise ObserverError("URI index 0 is not valid")
        data = bytes(data)
        if len(data) > BUFFER_SIZE:
            raise ObserverError("data does not fit in the notify buffer")
        excluded = None if excluded_ip_addr is None else _ip_bytes(excluded_ip_addr)

        sent = 0
        for sub in self.subscribers:
            if not sub.taken:
                continue
            for uri in sub.uris:
                if not uri.taken or uri.uri_index != uri_index:
                    continue
                if excluded is not None and sub.ip_addr == excluded:
                    continue
                message = build_notify_message(uri.token, data)
                if self.sender is not None:
                    self.sender(sub.ip_addr, message)
                sent += 1
        return sent