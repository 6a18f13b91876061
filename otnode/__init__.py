"""Thread mesh node application layer: CoAP node, URI observer list, device names and a string store."""

__version__ = "0.1.0"
__all__ = ["coap", "device_name", "nvs", "observers"]