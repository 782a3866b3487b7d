"""Telescope clients: one object per active slot, owning its transport.

Variants:
    VirtualTelescopeClient: Simulated mount
    SerialTelescopeClient: Device on a local serial line
    TcpTelescopeClient: Telescope server over TCP
    ServerProcessClient: Locally spawned telescope server

ClientFactory chooses the variant from a TelescopeDescriptor.
"""

from telescope_control.clients.factory import ClientFactory
from telescope_control.clients.network import TcpTelescopeClient
from telescope_control.clients.process import ServerProcessClient
from telescope_control.clients.protocol import MessageBuffer, ProtocolError
from telescope_control.clients.serial_client import SerialTelescopeClient
from telescope_control.clients.types import (
    BaseTelescopeClient,
    ClientCreationError,
    ClientState,
    Position,
    TelescopeClient,
    TelescopeClientError,
)
from telescope_control.clients.virtual import VirtualTelescopeClient

__all__ = [
    "BaseTelescopeClient",
    "ClientCreationError",
    "ClientFactory",
    "ClientState",
    "MessageBuffer",
    "Position",
    "ProtocolError",
    "SerialTelescopeClient",
    "ServerProcessClient",
    "TcpTelescopeClient",
    "TelescopeClient",
    "TelescopeClientError",
    "VirtualTelescopeClient",
]
