"""Collaborators the simulation talks to: the REST API and the messaging channel."""

from .api import ChatApiClient, Credential, simulated_identity
from .channel import (
    Channel,
    ChannelEvent,
    ChannelEventType,
    ReconnectPolicy,
    SocketIOChannel,
)

__all__ = [
    "Channel",
    "ChannelEvent",
    "ChannelEventType",
    "ChatApiClient",
    "Credential",
    "ReconnectPolicy",
    "SocketIOChannel",
    "simulated_identity",
]
