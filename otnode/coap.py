"""CoAP resources and messaging for a mesh node.

A node serves a fixed set of default resources: resource discovery,
pairing, subscription delivery and two test resources. Applications add
their own resources. Requests to observable resources either register
an observer or notify the registered observers.
"""

from __future__ import annotations

import enum
import ipaddress
import secrets
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Union

from otnode.device_name import DEVICE_NAME_FULL_SIZE, DeviceIdentity
from otnode.observers import (
    BUFFER_SIZE,
    TOKEN_LENGTH,
    DataPacket,
    ObserverError,
    ObserverList,
    SubscribeResult,
    parse_notify_message,
)

IP6_ADDRESS_SIZE = 16
MULTICAST_ADDR = ipaddress.IPv6Address("ff03::1").packed
LED_BUFFER_SIZE = 1024
SUBSCRIBED_BUFFER_SIZE = 264

PeerAddr = Union[bytes, bytearray, ipaddress.IPv6Address]


class CoapError(Exception):
    """A CoAP request or response could not be handled."""


class CoapCode(enum.IntEnum):
    """CoAP method and response codes (class << 5 | detail)."""

    EMPTY = 0x00
    GET = 0x01
    POST = 0x02
    PUT = 0x03
    DELETE = 0x04
    CREATED = 0x41
    DELETED = 0x42
    VALID = 0x43
    CHANGED = 0x44
    CONTENT = 0x45
    NOT_FOUND = 0x84
    METHOD_NOT_ALLOWED = 0x85


class CoapType(enum.IntEnum):
    """CoAP message types."""

    CONFIRMABLE = 0
    NON_CONFIRMABLE = 1
    ACKNOWLEDGMENT = 2
    RESET = 3


class MessageId(enum.Enum):
    """Canned response texts."""

    OK = "OK"
    ERROR = "ERROR"
    TEST = "Hello coap !!"


class UriIndex(enum.IntEnum):
    """Indices of the default resources."""

    NO_URI_INDEX = 0
    WELL_KNOWN_CORE = 1
    PARING_SERVICES = 2
    SUBSCRIBED_URIS = 3
    TEST = 4
    TEST_LED = 5
    END_OF_INDEX = 6


@dataclass
class CoapMessage:
    """A CoAP message: header fields, URI path, observe option and payload."""

    code: CoapCode
    type: CoapType = CoapType.CONFIRMABLE
    uri_path: str = ""
    token: bytes = b""
    payload: bytes = b""
    observe: Optional[int] = None


Handler = Callable[[CoapMessage, bytes], None]
Transport = Callable[[bytes, CoapMessage], None]


@dataclass
class UriResource:
    """A resource served by the node."""

    path: str
    handler: Handler
    uri_index: int = UriIndex.NO_URI_INDEX


def _peer_bytes(peer_addr: Optional[PeerAddr]) -> bytes:
    if peer_addr is None:
        raise CoapError("peer address is missing")
    if isinstance(peer_addr, ipaddress.IPv6Address):
        return peer_addr.packed
    raw = bytes(peer_addr)
    if len(raw) != IP6_ADDRESS_SIZE:
        raise CoapError(f"peer address must be {IP6_ADDRESS_SIZE} bytes")
    return raw


def get_message(msg_id: MessageId) -> str:
    """Return the text of a canned response."""
    try:
        return MessageId(msg_id).value
    except ValueError:
        raise CoapError(f"unknown message id {msg_id!r}") from None


def get_uri_name(uri_table: Sequence[UriResource], uri_index: int) -> Optional[str]:
    """Return the path of the resource with uri_index, or None."""
    if not uri_table:
        raise CoapError("resource table is empty")
    if uri_index in (UriIndex.NO_URI_INDEX, UriIndex.END_OF_INDEX):
        raise CoapError(f"invalid URI index {uri_index}")
    return next((res.path for res in uri_table if res.uri_index == uri_index), None)


_DEFAULT_PATHS = (
    (UriIndex.WELL_KNOWN_CORE, ".well-known/core"),
    (UriIndex.PARING_SERVICES, "paring_services"),
    (UriIndex.SUBSCRIBED_URIS, "subscribed_uris"),
    (UriIndex.TEST, "test"),
    (UriIndex.TEST_LED, "test/led"),
)


def default_uri_name(uri_index: int) -> Optional[str]:
    """Return the path of a default resource."""
    if uri_index in (UriIndex.NO_URI_INDEX, UriIndex.END_OF_INDEX):
        raise CoapError(f"invalid URI index {uri_index}")
    return next((path for index, path in _DEFAULT_PATHS if index == uri_index), None)


def read_payload(message: CoapMessage, buffer_size: int) -> bytes:
    """Return the payload; it must be non-empty and shorter than buffer_size."""
    if message is None:
        raise CoapError("message is missing")
    payload = bytes(message.payload)
    if len(payload) >= buffer_size:
        raise CoapError("payload does not fit in the buffer")
    if not payload:
        raise CoapError("payload is empty")
    return payload


def build_response(request: CoapMessage, content: Optional[bytes]) -> Optional[CoapMessage]:
    """Build the response to a request, or None when nothing is to be sent."""
    if request is None:
        raise CoapError("request is missing")
    if request.code == CoapCode.GET:
        if content is None:
            return None
        return CoapMessage(
            code=CoapCode.CONTENT,
            type=CoapType.CONFIRMABLE,
            token=request.token,
            payload=bytes(content),
        )
    if request.code == CoapCode.PUT:
        return CoapMessage(code=CoapCode.CHANGED, type=CoapType.CONFIRMABLE, token=request.token)
    return CoapMessage(
        code=CoapCode.METHOD_NOT_ALLOWED, type=CoapType.ACKNOWLEDGMENT, token=request.token
    )


class CoapNode:
    """Serves resources and sends requests through a transport."""

    def __init__(
        self, identity: DeviceIdentity, observers: ObserverList, transport: Transport
    ) -> None:
        if transport is None:
            raise CoapError("transport is missing")
        self.identity = identity
        self.observers = observers
        self.transport = transport
        self.resources: dict[str, UriResource] = {}
        self.device_resources: list[UriResource] = []
        self.on_pair_request: Optional[Callable[[str, bytes], None]] = None
        self.on_subscribed: Optional[Callable[[DataPacket], None]] = None
        handlers = {
            UriIndex.WELL_KNOWN_CORE: self._handle_well_known,
            UriIndex.PARING_SERVICES: self._handle_pairing,
            UriIndex.SUBSCRIBED_URIS: self._handle_subscribed,
            UriIndex.TEST: self._handle_test,
            UriIndex.TEST_LED: self._handle_led,
        }
        for index, path in _DEFAULT_PATHS:
            self.resources[path] = UriResource(path, handlers[index], index)

    @property
    def default_resources(self) -> list[UriResource]:
        return [self.resources[path] for _, path in _DEFAULT_PATHS]

    def add_resources(self, resources: Iterable[UriResource]) -> None:
        """Register application resources."""
        resources = list(resources) if resources is not None else []
        if not resources:
            raise CoapError("no resources to add")
        for res in resources:
            self.resources[res.path] = res
            self.device_resources.append(res)

    # sending

    def send(
        self,
        peer_addr: PeerAddr,
        uri_path: str,
        code: CoapCode,
        payload: Optional[Union[bytes, str]] = None,
        token: Optional[bytes] = None,
        observe_state: Optional[int] = None,
    ) -> Optional[bytes]:
        """Send a confirmable request; return the observe token, if any.

        observe_state 0 registers (a fresh token is generated), 1
        deregisters and 2 refreshes an existing registration.
        """
        peer = _peer_bytes(peer_addr)
        if uri_path is None:
            raise CoapError("URI path is missing")
        message = CoapMessage(code=CoapCode(code), uri_path=uri_path)

        if token is not None or observe_state is not None:
            state = observe_state or 0
            if state == 0:
                token = secrets.token_bytes(TOKEN_LENGTH)
            elif token is None:
                raise CoapError("token is required to update an observation")
            token = bytes(token)
            if len(token) != TOKEN_LENGTH:
                raise CoapError(f"token must be {TOKEN_LENGTH} bytes")
            message.token = token
            message.observe = state

        if message.code == CoapCode.PUT:
            if payload is None:
                raise CoapError("PUT request needs a payload")
            message.payload = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)

        self.transport(peer, message)
        return message.token or None

    def _full_name(self) -> str:
        name = self.identity.full_name
        if name is None:
            raise CoapError("device name has not been set")
        return name

    def send_subscribe_request(self, peer_addr: PeerAddr, uri_path: str) -> bytes:
        """Ask a peer to add this device as observer; return the new token."""
        return self.send(peer_addr, uri_path, CoapCode.PUT, self._full_name(), observe_state=0)

    def send_subscribe_update(self, peer_addr: PeerAddr, uri_path: str, token: bytes) -> None:
        """Refresh an existing observation with its token."""
        self.send(peer_addr, uri_path, CoapCode.PUT, self._full_name(), token=token, observe_state=2)

    def send_subscribed_uris(self, peer_addr: PeerAddr, data: bytes) -> None:
        """Deliver a notification message to a subscriber."""
        self.send(peer_addr, default_uri_name(UriIndex.SUBSCRIBED_URIS), CoapCode.PUT, data)

    def send_device_name(self) -> None:
        """Announce this device's full name to the multicast group."""
        self.send(
            MULTICAST_ADDR, default_uri_name(UriIndex.PARING_SERVICES), CoapCode.PUT, self._full_name()
        )

    # receiving

    def _respond(self, request: CoapMessage, peer: bytes, content: Optional[bytes]) -> None:
        response = build_response(request, content)
        if response is not None:
            self.transport(peer, response)

    def subscribe_from_message(
        self,
        message: CoapMessage,
        peer_addr: PeerAddr,
        uri_index: int,
        device_name_full: str,
    ) -> Optional[SubscribeResult]:
        """Handle the observe option; return None if the message has none."""
        if message is None or device_name_full is None:
            raise CoapError("message and device name are required")
        peer = _peer_bytes(peer_addr)
        if message.observe is None:
            return None
        if len(device_name_full) >= DEVICE_NAME_FULL_SIZE:
            raise CoapError("device name is too long")
        if message.observe == 1:
            self.observers.unsubscribe(device_name_full, message.token)
            return SubscribeResult.NO_CHANGE
        return self.observers.subscribe(message.token, uri_index, peer, device_name_full)

    def process_uri_request(
        self,
        message: CoapMessage,
        peer_addr: PeerAddr,
        uri_index: int,
        buffer_size: int = BUFFER_SIZE,
    ) -> Optional[SubscribeResult]:
        """Serve a request to an observable resource.

        An observe request updates the observer list and its result is
        returned; any other request is acknowledged and forwarded to the
        observers of uri_index, and None is returned.
        """
        if message is None:
            raise CoapError("message is missing")
        peer = _peer_bytes(peer_addr)
        if not 0 < buffer_size <= BUFFER_SIZE:
            raise CoapError(f"buffer size must be in 1..{BUFFER_SIZE}")

        try:
            payload = read_payload(message, buffer_size)
        except CoapError:
            self._respond(message, peer, get_message(MessageId.ERROR).encode())
            raise

        name = payload.rstrip(b"\0").decode("utf-8", errors="replace")
        try:
            result = self.subscribe_from_message(message, peer, uri_index, name)
        except ObserverError as exc:
            raise CoapError(f"subscription failed: {exc}") from exc

        self._respond(message, peer, get_message(MessageId.OK).encode())
        if result is None:
            try:
                self.observers.notify(peer, uri_index, payload)
            except ObserverError as exc:
                raise CoapError(f"notification failed: {exc}") from exc
        return result

    def handle_request(self, message: CoapMessage, peer_addr: PeerAddr) -> None:
        """Dispatch a request to the resource named by its URI path."""
        if message is None:
            raise CoapError("message is missing")
        peer = _peer_bytes(peer_addr)
        resource = self.resources.get(message.uri_path)
        if resource is None:
            raise CoapError(f"no resource at {message.uri_path!r}")
        resource.handler(message, peer)

    # default resource handlers

    def _handle_test(self, message: CoapMessage, peer: bytes) -> None:
        self._respond(message, peer, get_message(MessageId.TEST).encode())

    def _handle_led(self, message: CoapMessage, peer: bytes) -> None:
        read_payload(message, LED_BUFFER_SIZE)
        self._respond(message, peer, None)

    def _handle_pairing(self, message: CoapMessage, peer: bytes) -> None:
        payload = read_payload(message, DEVICE_NAME_FULL_SIZE)
        self._respond(message, peer, None)
        if self.on_pair_request is not None:
            self.on_pair_request(payload.rstrip(b"\0").decode("utf-8", errors="replace"), peer)

    def _handle_well_known(self, message: CoapMessage, peer: bytes) -> None:
        if not self.device_resources:
            return
        links = ",".join(f"</{res.path}>" for res in self.device_resources)
        self._respond(message, peer, links.encode("utf-8"))

    def _handle_subscribed(self, message: CoapMessage, peer: bytes) -> None:
        payload = read_payload(message, SUBSCRIBED_BUFFER_SIZE)
        self._respond(message, peer, None)
        packet = parse_notify_message(payload)
        if self.on_subscribed is not None:
            self.on_subscribed(packet)