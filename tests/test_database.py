import unittest
from datetime import datetime
from unittest.mock import MagicMock

from pymongo.errors import AutoReconnect, ServerSelectionTimeoutError

from database import DocumentCollection, NotFound, SETTINGS_ID, StoreUnavailable, ValidationFailure
from schemas import Service
from support import make_store


class DocumentCollectionTests(unittest.TestCase):
    def setUp(self):
        self.store = make_store()

    def test_create_applies_defaults_and_timestamps(self):
        service = self.store.services.create({"title": "Portraits", "description": "Studio portraits"})
        self.assertIsInstance(service["_id"], str)
        self.assertEqual(service["icon"], "📷")
        self.assertEqual(service["imagePath"], "")
        self.assertEqual(service["features"], [])
        self.assertTrue(service["isActive"])
        self.assertEqual(service["order"], 0)
        self.assertIsNotNone(service["created_at"])
        self.assertEqual(service["created_at"], service["updated_at"])

    def test_create_rejects_missing_required_fields(self):
        with self.assertRaises(ValidationFailure):
            self.store.services.create({"title": "No description"})
        with self.assertRaises(ValidationFailure):
            self.store.carousel.create({"title": "", "subtitle": "x"})

    def test_negative_order_is_rejected(self):
        with self.assertRaises(ValidationFailure):
            self.store.services.create({"title": "A", "description": "B", "order": -1})

    def test_duplicate_email_is_a_validation_failure(self):
        self.store.users.create({"name": "Ada", "email": "ada@gmail.com", "password": "hash"})
        with self.assertRaises(ValidationFailure):
            self.store.users.create({"name": "Ada 2", "email": "ada@gmail.com", "password": "hash"})

    def test_find_sorts_by_order(self):
        self.store.services.create({"title": "B", "description": "b", "order": 2})
        self.store.services.create({"title": "A", "description": "a", "order": 1})
        self.store.services.create({"title": "Hidden", "description": "h", "order": 0, "isActive": False})
        active = self.store.services.find({"isActive": True}, sort=[("order", 1)])
        self.assertEqual([s["title"] for s in active], ["A", "B"])

    def test_find_by_id_handles_malformed_ids(self):
        self.assertIsNone(self.store.services.find_by_id("not-an-id"))
        self.assertIsNone(self.store.services.find_by_id("0123456789ab0123456789ab"))

    def test_update_revalidates_and_drops_unknown_fields(self):
        service = self.store.services.create({"title": "Old", "description": "d"})
        updated = self.store.services.find_by_id_and_update(
            service["_id"], {"title": "New", "order": "3", "bogus": "x"}
        )
        self.assertEqual(updated["title"], "New")
        self.assertEqual(updated["order"], 3)
        self.assertNotIn("bogus", updated)
        self.assertEqual(updated["description"], "d")

        with self.assertRaises(ValidationFailure):
            self.store.services.find_by_id_and_update(service["_id"], {"order": "-5"})

    def test_update_and_delete_missing_documents(self):
        with self.assertRaises(NotFound):
            self.store.carousel.find_by_id_and_update("0123456789ab0123456789ab", {"title": "x"})
        with self.assertRaises(NotFound):
            self.store.carousel.find_by_id_and_delete("garbage")

    def test_delete_returns_the_removed_document(self):
        slide = self.store.carousel.create({"title": "T", "subtitle": "S"})
        deleted = self.store.carousel.find_by_id_and_delete(slide["_id"])
        self.assertEqual(deleted["_id"], slide["_id"])
        self.assertEqual(self.store.carousel.count(), 0)

    def test_connectivity_errors_become_store_unavailable(self):
        collection = MagicMock()
        collection.find_one.side_effect = ServerSelectionTimeoutError("timed out")
        collection.insert_one.side_effect = AutoReconnect("lost")
        services = DocumentCollection(collection, Service)
        with self.assertRaises(StoreUnavailable):
            services.find_one({})
        with self.assertRaises(StoreUnavailable):
            services.create({"title": "A", "description": "B"})


class SiteSettingsTests(unittest.TestCase):
    def setUp(self):
        self.store = make_store()

    def test_upsert_creates_one_document_with_defaults(self):
        settings = self.store.settings.upsert({"siteName": "Studio"})
        self.assertEqual(settings["_id"], SETTINGS_ID)
        self.assertEqual(settings["siteName"], "Studio")
        self.assertEqual(settings["projectTitle"], "Professional Photography Services")

        self.store.settings.upsert({"phone": "+250 700 000 000"})
        self.assertEqual(self.store.settings.count(), 1)
        current = self.store.settings.get()
        self.assertEqual(current["siteName"], "Studio")
        self.assertEqual(current["phone"], "+250 700 000 000")

    def test_get_is_none_before_first_upsert(self):
        self.assertIsNone(self.store.settings.get())


class BookingTests(unittest.TestCase):
    def setUp(self):
        self.store = make_store()
        self.user = self.store.users.create({"name": "Ada", "email": "ada@gmail.com", "password": "hash"})
        self.service = self.store.services.create({"title": "Weddings", "description": "Full day"})

    def test_status_defaults_to_pending(self):
        booking = self.store.bookings.create({
            "userId": self.user["_id"],
            "serviceId": self.service["_id"],
            "bookingDate": "2026-11-01",
        })
        self.assertEqual(booking["status"], "pending")
        self.assertEqual(booking["bookingDate"], datetime(2026, 11, 1))
        self.assertEqual(booking["notes"], "")

    def test_status_must_be_enumerated(self):
        with self.assertRaises(ValidationFailure):
            self.store.bookings.create({
                "userId": self.user["_id"],
                "serviceId": self.service["_id"],
                "bookingDate": "2026-11-01T10:00:00",
                "status": "lost",
            })

    def test_populate_resolves_references(self):
        self.store.bookings.create({
            "userId": self.user["_id"],
            "serviceId": self.service["_id"],
            "bookingDate": "2026-11-01T10:00:00",
        })
        self.store.bookings.create({
            "userId": "0123456789ab0123456789ab",
            "serviceId": self.service["_id"],
            "bookingDate": "2026-11-02T10:00:00",
        })
        populated = self.store.populate_bookings(self.store.bookings.find(sort=[("bookingDate", 1)]))

        self.assertEqual(populated[0]["userId"]["email"], "ada@gmail.com")
        self.assertNotIn("password", populated[0]["userId"])
        self.assertEqual(populated[0]["serviceId"]["title"], "Weddings")
        self.assertIsNone(populated[1]["userId"])
        self.assertEqual(populated[1]["serviceId"]["_id"], self.service["_id"])


if __name__ == "__main__":
    unittest.main()
