"""
Relay traffic counters and optional InfluxDB export.

The relay loop only increments RelayStats. TelemetryWriter runs in its own
daemon thread, snapshots the counters and writes them in batches.
"""

import logging
import time
from dataclasses import asdict, dataclass
from threading import Event, Lock, Thread
from typing import List, Optional

try:
    from influxdb_client_3 import InfluxDBClient3, Point
    INFLUXDB_AVAILABLE = True
except ImportError:
    INFLUXDB_AVAILABLE = False


@dataclass
class RelayStats:
    """Traffic counters for one relay."""

    stream_reads: int = 0
    datagrams_sent: int = 0
    bytes_sent: int = 0
    datagrams_received: int = 0
    bytes_received: int = 0
    send_waits: int = 0
    foreign_dropped: int = 0

    def record_send(self, nbytes: int):
        self.datagrams_sent += 1
        self.bytes_sent += nbytes

    def record_receive(self, nbytes: int):
        self.datagrams_received += 1
        self.bytes_received += nbytes

    def snapshot(self) -> dict:
        return asdict(self)


class TelemetryWriter:
    """
    Periodically exports RelayStats to InfluxDB.

    Does nothing (apart from logging why) when telemetry is disabled or the
    influxdb3-python package is not installed.
    """

    MEASUREMENT = "relay_metrics"

    def __init__(self, stats: RelayStats, role: str, host: str, database: str,
                 token: str = "", interval: float = 2.0, enabled: bool = True):
        self.stats = stats
        self.role = role
        self.host = host
        self.database = database
        self.token = token
        self.interval = interval
        self.enabled = enabled
        self.logger = logging.getLogger(__name__)

        self.client: Optional["InfluxDBClient3"] = None
        self.buffer: List["Point"] = []
        self.buffer_lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def start(self) -> bool:
        """
        Connect to InfluxDB and start the batch writer thread.

        Returns:
            True if telemetry is active
        """
        if self.client is not None:
            return True

        if not self.enabled:
            self.logger.info("Telemetry disabled")
            return False

        if not INFLUXDB_AVAILABLE:
            self.logger.warning("Telemetry enabled but influxdb3-python package not installed. "
                                "Install with: pip install influxdb3-python")
            return False

        try:
            self.client = InfluxDBClient3(host=self.host, database=self.database, token=self.token)
        except Exception as e:
            self.logger.error(f"Failed to initialize InfluxDB client: {e}")
            self.client = None
            return False

        self._stop_event.clear()
        self._thread = Thread(target=self._batch_writer, name="relay-telemetry", daemon=True)
        self._thread.start()
        self.logger.info(f"InfluxDB telemetry enabled (batch mode, {self.interval}s interval): "
                         f"{self.host}/{self.database}")
        return True

    def make_point(self, counters: dict) -> "Point":
        point = Point(self.MEASUREMENT).tag("role", self.role)
        for name, value in counters.items():
            point = point.field(name, int(value))
        return point.time(time.time_ns())

    def collect(self):
        """Buffer one snapshot of the counters."""
        point = self.make_point(self.stats.snapshot())
        with self.buffer_lock:
            self.buffer.append(point)

    def flush(self) -> int:
        """
        Write all buffered points.

        Returns:
            Number of points written
        """
        with self.buffer_lock:
            if not self.buffer:
                return 0
            points_to_write = self.buffer[:]
            self.buffer.clear()

        try:
            self.client.write(record=points_to_write)
            self.logger.debug(f"Batch wrote {len(points_to_write)} points to InfluxDB")
        except Exception as e:
            self.logger.warning(f"Failed to batch write to InfluxDB: {e}")
            return 0
        return len(points_to_write)

    def _batch_writer(self):
        self.logger.info("InfluxDB batch writer thread started")

        while not self._stop_event.wait(self.interval):
            try:
                self.collect()
                self.flush()
            except Exception as e:
                self.logger.error(f"Error in batch writer thread: {e}")

        # Final snapshot on shutdown
        try:
            self.collect()
            written = self.flush()
            self.logger.info(f"Final flush: wrote {written} points")
        except Exception as e:
            self.logger.warning(f"Final telemetry flush failed: {e}")

        self.logger.info("InfluxDB batch writer thread stopped")

    def stop(self):
        """Stop the writer thread and close the client."""
        if self.client is None:
            return

        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self.logger.info("Waiting for InfluxDB batch writer to finish...")
            self._thread.join(timeout=5.0)

        try:
            self.client.close()
            self.logger.info("InfluxDB client closed")
        except Exception as e:
            self.logger.warning(f"Error closing InfluxDB client: {e}")
        self.client = None
