"""
Endpoint resolution for the UDP transport.

Turns a (host, port) pair into an address usable for sendto(), or a
(None, port) pair into a wildcard address usable for bind().
"""

import logging
import socket
from dataclasses import dataclass
from typing import Optional, Tuple

from .exceptions import ResolutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Endpoint:
    """
    Resolved UDP address.
    """

    family: int
    socktype: int
    proto: int
    sockaddr: Tuple

    @property
    def host(self) -> str:
        return self.sockaddr[0]

    @property
    def port(self) -> int:
        return self.sockaddr[1]

    def matches(self, addr: Tuple) -> bool:
        """Check whether a recvfrom() source address is this endpoint."""
        return tuple(addr[:2]) == tuple(self.sockaddr[:2])

    def __str__(self) -> str:
        if self.family == socket.AF_INET6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def resolve_endpoint(host: Optional[str], port: int, family: int = socket.AF_UNSPEC,
                     addrconfig: bool = True) -> Endpoint:
    """
    Resolve a UDP endpoint.

    Only the first candidate returned by the lookup is used; the others are
    never tried.

    Args:
        host: Host name or numeric address, or None for a passive (wildcard) address
        port: UDP port
        family: Address family to restrict the lookup to
        addrconfig: Only return families configured on a non-loopback interface

    Returns:
        Endpoint

    Raises:
        ResolutionError: If the lookup fails or returns no candidates
    """
    flags = socket.AI_PASSIVE if host is None else 0
    if addrconfig:
        flags |= getattr(socket, "AI_ADDRCONFIG", 0)

    try:
        candidates = socket.getaddrinfo(host, str(port), family, socket.SOCK_DGRAM,
                                        socket.IPPROTO_UDP, flags)
    except socket.gaierror as e:
        logger.debug(f"getaddrinfo rc={e.errno}: {e.strerror}")
        raise ResolutionError(host, port, e.errno, e.strerror) from e

    if not candidates:
        raise ResolutionError(host, port, None, "no addresses returned")

    af, socktype, proto, _, sockaddr = candidates[0]
    endpoint = Endpoint(af, socktype, proto, sockaddr)
    logger.debug(f"Resolved {host if host is not None else '<passive>'}:{port} -> {endpoint}")
    return endpoint
