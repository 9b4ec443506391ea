import unittest
from datetime import timedelta

from missioncontrol.auth import (
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from missioncontrol.config import Settings
from missioncontrol.errors import AuthenticationError


class PasswordTests(unittest.TestCase):
    def test_hash_and_verify(self):
        hashed = hash_password("hunter22")
        self.assertNotEqual(hashed, "hunter22")
        self.assertTrue(verify_password("hunter22", hashed))
        self.assertFalse(verify_password("hunter23", hashed))


class TokenTests(unittest.TestCase):
    def setUp(self):
        self.settings = Settings(secret_key="test-secret")

    def test_roundtrip(self):
        token = create_access_token(7, self.settings)
        self.assertEqual(decode_access_token(token, self.settings), 7)

    def test_expired_token_rejected(self):
        token = create_access_token(7, self.settings, expires_delta=timedelta(seconds=-5))
        with self.assertRaises(AuthenticationError):
            decode_access_token(token, self.settings)

    def test_wrong_secret_rejected(self):
        token = create_access_token(7, Settings(secret_key="other-secret"))
        with self.assertRaises(AuthenticationError):
            decode_access_token(token, self.settings)

    def test_garbage_rejected(self):
        with self.assertRaises(AuthenticationError):
            decode_access_token("not-a-token", self.settings)


if __name__ == "__main__":
    unittest.main()
