import os
import select
import socket
import threading
import unittest

from udp_transport.config import RelayConfig, Role


class BaseTestCase(unittest.TestCase):
    """Loopback sockets, pipes and a background runner for relay tests."""

    TIMEOUT = 5.0

    def setUp(self):
        self._fds = set()

    def tearDown(self):
        for fd in list(self._fds):
            self.close_fd(fd)

    def make_pipe(self):
        r, w = os.pipe()
        self._fds.update((r, w))
        return r, w

    def close_fd(self, fd):
        if fd in self._fds:
            self._fds.discard(fd)
            os.close(fd)

    def make_peer(self):
        """UDP socket standing in for the remote side of the link."""
        peer = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        peer.bind(("127.0.0.1", 0))
        peer.settimeout(self.TIMEOUT)
        self.addCleanup(peer.close)
        return peer

    def make_config(self, peer_port, **overrides):
        values = {
            'local_port': 0,
            'peer_host': "127.0.0.1",
            'peer_port': peer_port,
            'address_family': "ipv4",
            'addrconfig': False,
        }
        values.update(overrides)
        return RelayConfig.for_role(Role.INITIATOR, **values)

    def read_exactly(self, fd, size):
        data = b""
        while len(data) < size:
            ready, _, _ = select.select([fd], [], [], self.TIMEOUT)
            if not ready:
                self.fail(f"Timed out after {len(data)} of {size} bytes")
            chunk = os.read(fd, size - len(data))
            if not chunk:
                self.fail("Unexpected end of stream")
            data += chunk
        return data

    def run_in_thread(self, relay, rd, wr, ctrl=None):
        """Start relay.run() in a thread; the outcome is stored in the returned dict."""
        outcome = {}

        def target():
            try:
                outcome['result'] = relay.run(rd, wr, ctrl)
            except Exception as e:
                outcome['error'] = e

        thread = threading.Thread(target=target, daemon=True)
        thread.start()
        outcome['thread'] = thread
        return outcome

    def join(self, outcome):
        outcome['thread'].join(self.TIMEOUT)
        self.assertFalse(outcome['thread'].is_alive(), "relay loop did not exit")
