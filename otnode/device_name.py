"""Device naming for the mesh network.

A full device name has the form ``<name>_<type>_<eui64 hex>``, for example
``lamp_1_0001020304050607``. The same label, followed by the SRP domain,
is the host name announced on the network.
"""

from __future__ import annotations

import enum
from typing import Optional

DEVICE_NAME_SIZE = 9
DEVICE_NAME_FULL_SIZE = 32
DEVICE_NAME_MIN_SIZE = 20
DNS_SRV_LABEL_SIZE = 64
EXT_ADDRESS_SIZE = 8
EUI_CHAR_MAX_SIZE = 3 * EXT_ADDRESS_SIZE
EUI_CHAR_MIN_SIZE = EXT_ADDRESS_SIZE
DOMAIN = ".default.service.arpa."


class DeviceNameError(Exception):
    """Invalid device name or device name state."""


class DeviceNameTooLong(DeviceNameError):
    """The name exceeds the allowed length."""


class DeviceNameTooShort(DeviceNameError):
    """The name is shorter than the allowed length."""


class DeviceType(enum.IntEnum):
    """Kinds of devices; 0 means no type."""

    NO_DEVICE = 0
    CONTROL_PANEL = 1
    SWITCH = 2
    LIGHT_ON_OFF = 3
    LIGHT_DIMMABLE = 4
    LIGHT_RGB = 5
    THERMOSTAT = 6
    SENSOR = 7


END_OF_DEVICE_TYPE = max(DeviceType) + 1


def _first_token(text: str, sep: str) -> Optional[str]:
    return next((part for part in text.split(sep) if part), None)


def _eui_bytes(eui64: bytes) -> bytes:
    raw = bytes(eui64)
    if len(raw) != EXT_ADDRESS_SIZE:
        raise DeviceNameError(f"EUI-64 must be {EXT_ADDRESS_SIZE} bytes")
    return raw


def make_device_name_full(device_name: str, device_type: int, eui64: bytes) -> str:
    """Build ``<name>_<type>_<eui hex>`` for a device."""
    if device_name is None:
        raise DeviceNameError("device name is missing")
    if device_type == DeviceType.NO_DEVICE or not 0 < device_type < END_OF_DEVICE_TYPE:
        raise DeviceNameError(f"invalid device type {device_type}")
    if len(device_name) > DEVICE_NAME_SIZE:
        raise DeviceNameTooLong(f"device name longer than {DEVICE_NAME_SIZE}")
    label = f"{device_name}_{int(device_type)}_{_eui_bytes(eui64).hex()}"
    return label[: DNS_SRV_LABEL_SIZE - 2]


def device_type_of(device_name_full: str) -> DeviceType:
    """Return the device type encoded in a full device name."""
    if device_name_full is None:
        raise DeviceNameError("device name is missing")
    if len(device_name_full) >= DEVICE_NAME_FULL_SIZE:
        raise DeviceNameTooLong("full device name is too long")
    parts = [part for part in device_name_full.split("_") if part]
    if len(parts) < 2:
        raise DeviceNameError("device name has no type field")
    digits = ""
    for char in parts[1].lstrip():
        if not char.isdigit():
            break
        digits += char
    value = (int(digits) if digits else 0) % 256
    if value == DeviceType.NO_DEVICE or value >= END_OF_DEVICE_TYPE:
        raise DeviceNameError(f"invalid device type {value}")
    return DeviceType(value)


def eui_of(device_name_full: str) -> str:
    """Return the EUI part (text after the last underscore)."""
    if (
        device_name_full is None
        or len(device_name_full) == 0
        or len(device_name_full) >= DEVICE_NAME_FULL_SIZE
    ):
        raise DeviceNameError("invalid full device name")
    _, sep, eui = device_name_full.rpartition("_")
    if not sep:
        raise DeviceNameError("device name has no EUI field")
    if not EUI_CHAR_MIN_SIZE <= len(eui) < EUI_CHAR_MAX_SIZE:
        raise DeviceNameError("EUI field has an invalid length")
    return eui


def eui_is_same(device_name_full: str, eui: str) -> bool:
    """Tell whether the EUI part of a full name equals eui."""
    if device_name_full is None or eui is None:
        raise DeviceNameError("device name and EUI are required")
    return eui_of(device_name_full) == eui


def add_domain(device_name_full: str) -> str:
    """Return the host name: the full device name followed by the domain."""
    if device_name_full is None:
        raise DeviceNameError("device name is missing")
    if len(device_name_full) >= DEVICE_NAME_FULL_SIZE:
        raise DeviceNameTooLong("full device name is too long")
    if len(device_name_full) < DEVICE_NAME_MIN_SIZE:
        raise DeviceNameTooShort("full device name is too short")
    return device_name_full + DOMAIN


def host_name_to_device_name_full(host_name: str) -> str:
    """Strip the domain from a host name and return the full device name."""
    if host_name is None or "." not in host_name:
        raise DeviceNameError("host name has no domain")
    label = _first_token(host_name, ".")
    if label is None:
        raise DeviceNameError("host name has no label")
    return label


class DeviceIdentity:
    """The name under which this device is known on the network."""

    def __init__(self, eui64: bytes) -> None:
        self.eui64 = _eui_bytes(eui64)
        self._name = ""

    @property
    def full_name(self) -> Optional[str]:
        """The full device name, or None if it was never set."""
        return self._name or None

    def set_name(self, device_name: str, device_type: int) -> str:
        """Set and return the full device name."""
        self._name = make_device_name_full(device_name, device_type, self.eui64)
        return self._name

    def delete(self) -> None:
        """Forget the device name."""
        self._name = ""

    def _require_name(self) -> str:
        if not self._name:
            raise DeviceNameError("device name has not been set")
        return self._name

    def full_is_same(self, device_name_full: str) -> bool:
        """Tell whether device_name_full is exactly this device's name."""
        if device_name_full is None:
            raise DeviceNameError("device name is missing")
        if len(device_name_full) >= DEVICE_NAME_FULL_SIZE:
            raise DeviceNameTooLong("full device name is too long")
        return device_name_full == self._require_name()

    def base_is_same(self, device_name_full: str) -> bool:
        """Tell whether the name part (before the first '_') matches ours."""
        if device_name_full is None:
            raise DeviceNameError("device name is missing")
        if len(device_name_full) >= DEVICE_NAME_FULL_SIZE - 1:
            raise DeviceNameTooLong("full device name is too long")
        if len(device_name_full) < DEVICE_NAME_MIN_SIZE:
            raise DeviceNameTooShort("full device name is too short")
        current = self._require_name()
        return _first_token(device_name_full, "_") == _first_token(current, "_")

    def is_matching(self, device_name_full: str) -> bool:
        """True for another device sharing this device's name part."""
        if device_name_full is None:
            raise DeviceNameError("device name is missing")
        try:
            if self.full_is_same(device_name_full):
                return False
        except DeviceNameTooLong:
            return False
        try:
            return self.base_is_same(device_name_full)
        except (DeviceNameTooLong, DeviceNameTooShort):
            return False