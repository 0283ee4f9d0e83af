import unittest
from unittest import mock

from udp_transport.telemetry import RelayStats, TelemetryWriter


class TestRelayStats(unittest.TestCase):

    def test_counters(self):
        stats = RelayStats()
        stats.record_send(11)
        stats.record_send(4096)
        stats.record_receive(5)

        snapshot = stats.snapshot()
        self.assertEqual(snapshot['datagrams_sent'], 2)
        self.assertEqual(snapshot['bytes_sent'], 4107)
        self.assertEqual(snapshot['datagrams_received'], 1)
        self.assertEqual(snapshot['bytes_received'], 5)
        self.assertEqual(snapshot['foreign_dropped'], 0)


class TestTelemetryWriter(unittest.TestCase):

    def make_writer(self, **kwargs):
        values = {'role': "initiator", 'host': "localhost:8086", 'database': "relay", 'interval': 60.0}
        values.update(kwargs)
        return TelemetryWriter(RelayStats(), **values)

    def test_disabled(self):
        writer = self.make_writer(enabled=False)

        self.assertFalse(writer.start())
        writer.stop()
        self.assertIsNone(writer.client)

    def test_library_missing(self):
        writer = self.make_writer()

        with mock.patch('udp_transport.telemetry.INFLUXDB_AVAILABLE', False):
            self.assertFalse(writer.start())
        self.assertIsNone(writer.client)

    def test_client_failure(self):
        writer = self.make_writer()

        with mock.patch('udp_transport.telemetry.INFLUXDB_AVAILABLE', True), \
                mock.patch('udp_transport.telemetry.InfluxDBClient3', create=True,
                           side_effect=ValueError("bad host")):
            self.assertFalse(writer.start())
        self.assertIsNone(writer.client)

    def test_batches_snapshots(self):
        writer = self.make_writer()
        writer.stats.record_send(11)

        with mock.patch('udp_transport.telemetry.INFLUXDB_AVAILABLE', True), \
                mock.patch('udp_transport.telemetry.InfluxDBClient3', create=True) as client_cls, \
                mock.patch('udp_transport.telemetry.Point', create=True) as point_cls:
            self.assertTrue(writer.start())
            client = client_cls.return_value

            writer.collect()
            writer.collect()
            self.assertEqual(writer.flush(), 2)
            self.assertEqual(writer.flush(), 0)

            written = client.write.call_args[1]['record']
            self.assertEqual(len(written), 2)
            point_cls.assert_called_with("relay_metrics")
            point_cls.return_value.tag.assert_called_with("role", "initiator")

            writer.stop()

        client_cls.assert_called_once_with(host="localhost:8086", database="relay", token="")
        client.close.assert_called_once_with()
        self.assertIsNone(writer.client)
        # Final snapshot written on shutdown
        self.assertEqual(client.write.call_count, 2)

    def test_start_is_idempotent_and_restartable(self):
        writer = self.make_writer()

        with mock.patch('udp_transport.telemetry.INFLUXDB_AVAILABLE', True), \
                mock.patch('udp_transport.telemetry.InfluxDBClient3', create=True) as client_cls, \
                mock.patch('udp_transport.telemetry.Point', create=True):
            self.assertTrue(writer.start())
            first_thread = writer._thread
            self.assertTrue(writer.start())

            self.assertEqual(client_cls.call_count, 1)
            self.assertIs(writer._thread, first_thread)

            writer.stop()
            self.assertFalse(first_thread.is_alive())

            self.assertTrue(writer.start())
            self.assertEqual(client_cls.call_count, 2)
            self.assertIsNot(writer._thread, first_thread)
            self.assertTrue(writer._thread.is_alive())

            writer.stop()

    def test_failed_write_is_dropped(self):
        writer = self.make_writer()
        writer.client = mock.Mock()
        writer.client.write.side_effect = RuntimeError("server down")

        with mock.patch('udp_transport.telemetry.Point', create=True):
            writer.collect()
            self.assertEqual(writer.flush(), 0)
        self.assertEqual(writer.buffer, [])
