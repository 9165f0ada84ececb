import unittest

from bson.objectid import ObjectId

from database import InMemoryDocumentStore, object_id
from errors import BadRequestError
from schemas import AssetRef, Skill


class InMemoryDocumentStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryDocumentStore()

    def test_create_and_find(self):
        skill = Skill(title="Python", proficiency=90, svg=AssetRef(public_id="s/1", url="u"))
        doc = self.store.create_document("skill", skill)
        self.assertIsInstance(doc["_id"], ObjectId)
        found = self.store.find_by_id("skill", doc["_id"])
        self.assertEqual(found["title"], "Python")
        self.assertEqual(found["svg"]["public_id"], "s/1")
        self.assertIn("created_at", found)

    def test_returned_documents_are_copies(self):
        doc = self.store.create_document("skill", {"title": "Go"})
        found = self.store.find_by_id("skill", doc["_id"])
        found["title"] = "changed"
        self.assertEqual(self.store.find_by_id("skill", doc["_id"])["title"], "Go")

    def test_update_sets_and_unsets(self):
        doc = self.store.create_document("user", {"email": "a@b.dev", "reset_password_token": "x"})
        updated = self.store.update_by_id(
            "user", doc["_id"], {"phone": "123"}, unset=("reset_password_token",)
        )
        self.assertEqual(updated["phone"], "123")
        self.assertNotIn("reset_password_token", updated)

    def test_update_missing_returns_none(self):
        self.assertIsNone(self.store.update_by_id("skill", ObjectId(), {"title": "x"}))

    def test_delete(self):
        doc = self.store.create_document("project", {"title": "p"})
        self.assertTrue(self.store.delete_by_id("project", doc["_id"]))
        self.assertFalse(self.store.delete_by_id("project", doc["_id"]))
        self.assertEqual(self.store.get_documents("project"), [])

    def test_user_email_is_unique(self):
        first = self.store.create_document("user", {"email": "a@b.dev"})
        with self.assertRaises(BadRequestError):
            self.store.create_document("user", {"email": "a@b.dev"})
        other = self.store.create_document("user", {"email": "c@d.dev"})
        with self.assertRaises(BadRequestError):
            self.store.update_by_id("user", other["_id"], {"email": "a@b.dev"})
        # re-saving its own email is fine
        self.store.update_by_id("user", first["_id"], {"email": "a@b.dev"})

    def test_find_one_matches_all_fields(self):
        self.store.create_document("user", {"email": "a@b.dev", "phone": "1"})
        self.assertIsNotNone(self.store.find_one("user", {"email": "a@b.dev", "phone": "1"}))
        self.assertIsNone(self.store.find_one("user", {"email": "a@b.dev", "phone": "2"}))


class ObjectIdTests(unittest.TestCase):
    def test_malformed_id_is_bad_request(self):
        with self.assertRaises(BadRequestError) as ctx:
            object_id("not-an-id")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_valid_id(self):
        oid = ObjectId()
        self.assertEqual(object_id(str(oid)), oid)


if __name__ == "__main__":
    unittest.main()
