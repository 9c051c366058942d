import unittest
from types import SimpleNamespace
from unittest.mock import patch

from pymongo.errors import ServerSelectionTimeoutError

import database
from database import AvailabilityMonitor, TopologyMonitor


def topology_event(writable: bool):
    return SimpleNamespace(new_description=SimpleNamespace(has_writable_server=lambda: writable))


class AvailabilityMonitorTests(unittest.TestCase):
    def setUp(self):
        self.sleeps = []
        self.monitor = AvailabilityMonitor(max_retries=3, retry_delay=2.0, sleep=self.sleeps.append)

    def test_starts_disconnected(self):
        self.assertFalse(self.monitor.is_connected())

    def test_three_failures_end_in_fallback_mode(self):
        attempts = []

        def attempt():
            attempts.append(1)
            raise ServerSelectionTimeoutError("no servers")

        self.assertFalse(self.monitor.connect(attempt))
        self.assertEqual(len(attempts), 3)
        self.assertEqual(self.sleeps, [2.0, 2.0])
        self.assertFalse(self.monitor.is_connected())

    def test_stays_down_until_explicit_success_event(self):
        def attempt():
            raise ServerSelectionTimeoutError("no servers")

        self.monitor.connect(attempt)
        self.assertFalse(self.monitor.is_connected())
        self.assertFalse(self.monitor.is_connected())

        self.monitor.mark_connected()
        self.assertTrue(self.monitor.is_connected())

    def test_success_after_retry(self):
        results = [ServerSelectionTimeoutError("down"), None]

        def attempt():
            result = results.pop(0)
            if result is not None:
                raise result

        self.assertTrue(self.monitor.connect(attempt))
        self.assertTrue(self.monitor.is_connected())
        self.assertEqual(self.sleeps, [2.0])

    def test_non_store_errors_propagate(self):
        def attempt():
            raise RuntimeError("bug")

        with self.assertRaises(RuntimeError):
            self.monitor.connect(attempt)

    def test_topology_events_drive_the_flag(self):
        listener = TopologyMonitor(self.monitor)
        listener.description_changed(topology_event(True))
        self.assertTrue(self.monitor.is_connected())
        listener.description_changed(topology_event(False))
        self.assertFalse(self.monitor.is_connected())
        listener.description_changed(topology_event(True))
        listener.closed(SimpleNamespace())
        self.assertFalse(self.monitor.is_connected())


class ConnectStoreTests(unittest.TestCase):
    def tearDown(self):
        database.close_store()

    @patch("database.DATABASE_URL", None)
    def test_no_url_means_fallback(self):
        monitor = AvailabilityMonitor(sleep=lambda s: None)
        self.assertIsNone(database.connect_store(monitor))
        self.assertIsNone(database.get_store())
        self.assertFalse(monitor.is_connected())

    @patch("database.MongoClient")
    @patch("database.DATABASE_URL", "mongodb://db.invalid:27017")
    def test_unreachable_store_keeps_serving(self, mock_client):
        mock_client.return_value.admin.command.side_effect = ServerSelectionTimeoutError("timeout")
        sleeps = []
        monitor = AvailabilityMonitor(sleep=sleeps.append)

        store = database.connect_store(monitor)

        self.assertIsNotNone(store)
        self.assertIs(database.get_store(), store)
        self.assertFalse(monitor.is_connected())
        self.assertEqual(mock_client.return_value.admin.command.call_count, 3)
        self.assertEqual(sleeps, [2.0, 2.0])
        kwargs = mock_client.call_args.kwargs
        self.assertEqual(kwargs["serverSelectionTimeoutMS"], 5000)
        self.assertEqual(kwargs["maxPoolSize"], 10)
        self.assertIsInstance(kwargs["event_listeners"][0], TopologyMonitor)

    @patch("database.MongoClient")
    @patch("database.DATABASE_URL", "mongodb://localhost:27017")
    def test_reachable_store_creates_indexes(self, mock_client):
        monitor = AvailabilityMonitor(sleep=lambda s: None)

        store = database.connect_store(monitor)

        self.assertTrue(monitor.is_connected())
        mock_client.return_value.admin.command.assert_called_once_with("ping")
        store.users.collection.create_index.assert_called_with("email", unique=True)


if __name__ == "__main__":
    unittest.main()
