"""
UDP Transport - point-to-point UDP relay for stream-encapsulated traffic

This package relays a local byte stream (for example PPP frames on a pipe)
to a single fixed UDP peer, and writes datagrams received from that peer
back to the local stream:
- Stream reads -> one datagram each -> peer
- Datagrams from the peer -> stream writes

Each side of the link has a role (initiator or responder) that fixes its
local port and its peer address for the lifetime of the process.
"""

__version__ = "1.0.0"

from .config import RelayConfig, Role, load_configuration
from .exceptions import (
    RelayError,
    ConfigurationError,
    ResolutionError,
    BindError,
    StreamClosed,
    FatalIO
)
from .io_status import ErrorClassifier, IOStatus
from .relay_service import UDPRelay, bind_local, resolve_peer
from .resolver import Endpoint, resolve_endpoint

__all__ = [
    '__version__',
    'RelayConfig',
    'Role',
    'load_configuration',
    'RelayError',
    'ConfigurationError',
    'ResolutionError',
    'BindError',
    'StreamClosed',
    'FatalIO',
    'ErrorClassifier',
    'IOStatus',
    'UDPRelay',
    'bind_local',
    'resolve_peer',
    'Endpoint',
    'resolve_endpoint',
]
