"""
Point-to-point UDP transport relay.

Bytes read from a local stream descriptor (for example a pipe carrying PPP
frames) are sent as datagrams to a single fixed peer. Datagrams received
from the peer are written back to a local stream descriptor.
"""

import argparse
import logging
import os
import select
import signal
import socket
import sys
from typing import Optional

from .config import DEFAULT_CONFIG_PATH, load_configuration, RelayConfig
from .exceptions import BindError, FatalIO, StreamClosed
from .io_status import ErrorClassifier, IOStatus
from .resolver import Endpoint, resolve_endpoint
from .telemetry import RelayStats, TelemetryWriter


def bind_local(port: int, family: int = socket.AF_UNSPEC, addrconfig: bool = True) -> socket.socket:
    """
    Create a UDP socket bound to the wildcard address on the given port.

    Args:
        port: Local UDP port (0 lets the kernel choose)
        family: Address family to bind in
        addrconfig: Passed through to the resolver

    Returns:
        Bound socket

    Raises:
        ResolutionError: If the passive address cannot be resolved
        BindError: If the socket cannot be created or bound
    """
    endpoint = resolve_endpoint(None, port, family, addrconfig)

    try:
        sock = socket.socket(endpoint.family, endpoint.socktype, endpoint.proto)
    except OSError as e:
        raise BindError(port, e.errno, e.strerror) from e

    try:
        sock.bind(endpoint.sockaddr)
    except OSError as e:
        sock.close()
        raise BindError(port, e.errno, e.strerror) from e

    return sock


def resolve_peer(host: str, port: int, family: int = socket.AF_UNSPEC, addrconfig: bool = True) -> Endpoint:
    """Resolve the fixed remote address datagrams are sent to."""
    return resolve_endpoint(host, port, family, addrconfig)


class UDPRelay:
    """
    UDP transport relay.

    Owns the bound UDP socket and the peer endpoint. The stream descriptors
    passed to run() are borrowed and never closed.
    """

    def __init__(self, config: RelayConfig):
        """
        Initialize the relay: resolve the peer, then bind the local socket.

        Args:
            config: Relay configuration

        Raises:
            ResolutionError: If the peer or the local wildcard address cannot be resolved
            BindError: If the local socket cannot be created or bound
        """
        self.config = config
        self.role = config.role
        self.logger = logging.getLogger(__name__)

        self.classifier = ErrorClassifier()
        self.stats = RelayStats()
        self.telemetry = TelemetryWriter(
            self.stats,
            role=config.role.value,
            host=config.influxdb_host,
            database=config.influxdb_database,
            token=config.influxdb_token,
            interval=config.telemetry_interval,
            enabled=config.telemetry_enabled,
        )

        # Transfer buffer, reused by every read and receive
        self.buffer = bytearray(config.buffer_size)
        self._view = memoryview(self.buffer)

        self.sock: Optional[socket.socket] = None
        self.peer: Optional[Endpoint] = None

        # Self-pipe used by stop() to wake up the readiness wait
        self._wake_r: Optional[int] = None
        self._wake_w: Optional[int] = None

        self._initialize()

    def _initialize(self):
        try:
            self.peer = resolve_peer(self.config.peer_host, self.config.peer_port,
                                     self.config.family, self.config.addrconfig)
            self.sock = bind_local(self.config.local_port, self.peer.family, self.config.addrconfig)
            self._wake_r, self._wake_w = os.pipe()
            os.set_blocking(self._wake_w, False)
        except Exception as e:
            self.logger.error(f"Failed to initialize relay: {e}")
            self._release()
            raise

        self.logger.info(f"Relay ({self.role.value}) bound to {self.local_address}, peer {self.peer}")

    @property
    def local_address(self):
        return self.sock.getsockname() if self.sock else None

    def _release(self):
        """Close the socket and wake-up pipe and drop the peer endpoint."""
        if self.sock:
            try:
                self.sock.close()
            except OSError as e:
                self.logger.warning(f"Error closing UDP socket: {e}")
            self.sock = None

        for fd in (self._wake_r, self._wake_w):
            if fd is not None:
                try:
                    os.close(fd)
                except OSError as e:
                    self.logger.warning(f"Error closing wake-up pipe: {e}")
        self._wake_r = self._wake_w = None

        self.peer = None

    def _wait(self, rlist, wlist):
        """Block until one of the descriptors is ready. No timeout."""
        try:
            return select.select(rlist, wlist, [])
        except OSError as e:
            if self.classifier.classify(e) is IOStatus.RECOVERABLE:
                return [], [], []
            raise FatalIO("select", e.errno, e.strerror) from e

    def _send_all(self, data: memoryview):
        """
        Send data to the peer, waiting whenever the socket cannot accept it.

        Raises:
            FatalIO: On any non-recoverable send error
        """
        total = len(data)
        offset = 0

        while offset < total:
            try:
                sent = self.sock.sendto(data[offset:], self.peer.sockaddr)
            except OSError as e:
                if self.classifier.is_interrupted(e):
                    continue
                if self.classifier.classify(e) is IOStatus.RECOVERABLE:
                    self.stats.send_waits += 1
                    self._wait([], [self.sock])
                    continue
                raise FatalIO("sendto", e.errno, e.strerror) from e

            if sent < total - offset:
                self.logger.debug(f"Partial send: {sent} of {total - offset} bytes")
            offset += sent

        self.stats.record_send(total)
        self.logger.debug(f"Sent {total} bytes to {self.peer}")

    def _write_all(self, fd: int, data: memoryview):
        """
        Write data to the local stream descriptor in full.

        Raises:
            FatalIO: On any non-recoverable write error
        """
        offset = 0

        while offset < len(data):
            try:
                offset += os.write(fd, data[offset:])
            except OSError as e:
                if self.classifier.is_interrupted(e):
                    continue
                if self.classifier.classify(e) is IOStatus.RECOVERABLE:
                    self._wait([], [fd])
                    continue
                raise FatalIO("write", e.errno, e.strerror) from e

    def _forward_stream(self, rd: int):
        """Read one buffer from the local stream and send it to the peer."""
        try:
            nbytes = os.readv(rd, [self.buffer])
        except OSError as e:
            if self.classifier.classify(e) is IOStatus.RECOVERABLE:
                return
            raise FatalIO("read", e.errno, e.strerror) from e

        if self.classifier.classify_read(nbytes) is IOStatus.CLOSED:
            raise StreamClosed("Local stream closed")

        self.stats.stream_reads += 1
        self._send_all(self._view[:nbytes])

    def _forward_datagram(self, wr: int):
        """Receive one datagram and write it to the local stream."""
        try:
            nbytes, addr = self.sock.recvfrom_into(self.buffer)
        except OSError as e:
            if self.classifier.classify(e) is IOStatus.RECOVERABLE:
                return
            raise FatalIO("recv", e.errno, e.strerror) from e

        if nbytes <= 0:
            return

        if self.config.peer_only and not self.peer.matches(addr):
            self.stats.foreign_dropped += 1
            self.logger.warning(f"Dropping {nbytes} bytes from unexpected source {addr[0]}:{addr[1]}")
            return

        self.logger.debug(f"Received {nbytes} bytes from {addr[0]}:{addr[1]}")
        self.stats.record_receive(nbytes)
        self._write_all(wr, self._view[:nbytes])

    def run(self, rd: int, wr: int, ctrl: Optional[int] = None):
        """
        Relay between the local stream and the peer until shutdown.

        Returns normally when stop() is called or ctrl becomes readable
        (data or end of file). Every other exit is an exception.

        Args:
            rd: Descriptor the outgoing stream is read from
            wr: Descriptor received datagrams are written to
            ctrl: Optional descriptor whose readiness requests shutdown

        Raises:
            StreamClosed: If rd reaches end of file
            FatalIO: On any non-recoverable I/O error
        """
        try:
            os.set_blocking(rd, False)
            self.sock.setblocking(False)
        except OSError as e:
            raise FatalIO("set non-blocking", e.errno, e.strerror) from e

        read_fds = [rd, self.sock, self._wake_r]
        if ctrl is not None:
            read_fds.append(ctrl)

        self.telemetry.start()
        self.logger.info("Entering relay loop")

        while True:
            readable, _, _ = self._wait(read_fds, [])

            if self._wake_r in readable:
                self.logger.info("Stop requested, leaving relay loop")
                return
            if ctrl is not None and ctrl in readable:
                self.logger.info("Control descriptor ready, leaving relay loop")
                return

            if rd in readable:
                self._forward_stream(rd)
            if self.sock in readable:
                self._forward_datagram(wr)

    def stop(self):
        """Ask a running loop to return. Safe to call from a signal handler."""
        if self._wake_w is None:
            return
        try:
            os.write(self._wake_w, b"\0")
        except BlockingIOError:
            # A wake-up byte is already pending
            pass

    def close(self):
        """Tear down the relay. Call exactly once."""
        self.logger.info("Closing relay")
        self.telemetry.stop()
        self._release()
        self.logger.info(f"Relay closed: {self.stats.snapshot()}")


# Global relay instance for signal handling
_relay_instance: Optional[UDPRelay] = None


def signal_handler(signum, frame):
    """Handle termination signals for graceful shutdown."""
    global _relay_instance
    if _relay_instance:
        _relay_instance.stop()


def setup_logging(log_level: str, log_file: Optional[str] = None,
                  log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'):
    """
    Setup logging configuration.

    Logs go to stderr, stdout carries relayed payload.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        log_format: Format string for all handlers
    """
    level = getattr(logging, log_level.upper())

    # Create formatter
    formatter = logging.Formatter(log_format)

    # Setup root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove any existing handlers
    logger.handlers = []

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="udp_transport", description="Relay stdin/stdout over UDP to a fixed peer.")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to config.yaml")
    p.add_argument("--server", action="store_const", const=True, default=None,
                   help="Run as initiator regardless of the config file")
    p.add_argument("--log-level", default=None, help="Override logging.level from the config file")
    return p.parse_args(argv)


def main(argv=None):
    """Main entry point for the relay."""
    args = parse_args(argv)

    try:
        # Load configuration
        config = load_configuration(args.config, server=args.server)
        if args.log_level:
            config.log_level = args.log_level
            config.validate()

        # Setup logging
        setup_logging(config.log_level, config.log_file, config.log_format)

        logger = logging.getLogger(__name__)
        logger.info("UDP Transport Relay")
        logger.info(f"Configuration: {config}")

        # Setup signal handlers
        signal.signal(signal.SIGTERM, signal_handler)
        signal.signal(signal.SIGINT, signal_handler)

        # Create and run relay
        global _relay_instance
        _relay_instance = UDPRelay(config)
        try:
            _relay_instance.run(sys.stdin.fileno(), sys.stdout.fileno())
        finally:
            _relay_instance.close()
            _relay_instance = None

        return 0

    except StreamClosed as e:
        logging.info(f"{e}, exiting")
        return 0

    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received")
        return 0

    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
