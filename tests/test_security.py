import unittest
from datetime import datetime, timedelta, timezone

from errors import AuthenticationError
from security import (
    create_access_token,
    decode_access_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    reset_token_valid,
    verify_password,
)


class PasswordTests(unittest.TestCase):
    def test_hash_is_not_plaintext_and_verifies(self):
        hashed = hash_password("s3cret-pass")
        self.assertNotEqual(hashed, "s3cret-pass")
        self.assertTrue(verify_password("s3cret-pass", hashed))
        self.assertFalse(verify_password("wrong-pass", hashed))

    def test_empty_hash_never_matches(self):
        self.assertFalse(verify_password("anything", ""))


class AccessTokenTests(unittest.TestCase):
    def test_round_trip_returns_user_id(self):
        token = create_access_token("abc123", "secret", timedelta(days=7))
        self.assertEqual(decode_access_token(token, "secret"), "abc123")

    def test_expired_token_rejected(self):
        token = create_access_token("abc123", "secret", timedelta(seconds=-10))
        with self.assertRaises(AuthenticationError) as ctx:
            decode_access_token(token, "secret")
        self.assertIn("expired", ctx.exception.message)

    def test_wrong_secret_rejected(self):
        token = create_access_token("abc123", "secret", timedelta(days=1))
        with self.assertRaises(AuthenticationError) as ctx:
            decode_access_token(token, "other-secret")
        self.assertIn("invalid", ctx.exception.message)


class ResetTokenTests(unittest.TestCase):
    def test_only_hash_is_returned_for_storage(self):
        token, token_hash, expires_at = generate_reset_token(timedelta(minutes=15))
        self.assertEqual(len(token), 40)
        self.assertEqual(token_hash, hash_reset_token(token))
        self.assertNotEqual(token, token_hash)
        self.assertGreater(expires_at, datetime.now(timezone.utc))

    def test_valid_until_expiry(self):
        token, token_hash, expires_at = generate_reset_token(timedelta(minutes=15))
        self.assertTrue(reset_token_valid(token_hash, expires_at, token))
        self.assertFalse(reset_token_valid(token_hash, expires_at, "not-the-token"))

    def test_expired_token_with_matching_hash_is_invalid(self):
        token, token_hash, _ = generate_reset_token(timedelta(minutes=15))
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        self.assertFalse(reset_token_valid(token_hash, past, token))

    def test_missing_fields_are_invalid(self):
        self.assertFalse(reset_token_valid(None, None, "token"))


if __name__ == "__main__":
    unittest.main()
