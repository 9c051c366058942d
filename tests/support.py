import unittest
from uuid import uuid4

import mongomock
from fastapi.testclient import TestClient

from auth import hash_password
from database import AvailabilityMonitor, Store, get_monitor, get_store
from main import app

ADMIN_EMAIL = "owner@esignstudio.com"
ADMIN_PASSWORD = "s3cret-pass"


def make_store() -> Store:
    store = Store(mongomock.MongoClient()[f"studio_{uuid4().hex}"])
    store.ensure_indexes()
    return store


class AppTestCase(unittest.TestCase):
    """Runs the app against mongomock with the monitor under test control."""

    connected = True

    def setUp(self):
        self.store = make_store()
        self.monitor = AvailabilityMonitor(sleep=lambda seconds: None)
        if self.connected:
            self.monitor.mark_connected()
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_monitor] = lambda: self.monitor
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def create_admin(self):
        return self.store.admins.create({"email": ADMIN_EMAIL, "password": hash_password(ADMIN_PASSWORD)})

    def login_admin(self, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
        return self.client.post("/admin/login", data={"email": email, "password": password})
