"""Endpoint management: registry, selection and request forwarding."""

from fetchgate.proxy.dispatcher import Dispatcher, ForwardedResponse
from fetchgate.proxy.registry import EndpointRegistry
from fetchgate.proxy.types import Endpoint

__all__ = ["Dispatcher", "Endpoint", "EndpointRegistry", "ForwardedResponse"]
