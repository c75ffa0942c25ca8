from cryptography.fernet import Fernet, InvalidToken
from django.test import SimpleTestCase, override_settings

from .encryption import encrypt_value, decrypt_value


class EncryptionTest(SimpleTestCase):
    """Test encryption helpers used for stored secrets"""

    def test_round_trip(self):
        """Encrypted values decrypt back to the original"""
        encrypted = encrypt_value('shpat_secret')
        self.assertNotEqual(encrypted, b'shpat_secret')
        self.assertEqual(decrypt_value(encrypted), 'shpat_secret')

    def test_memoryview_input(self):
        """Database backends may return memoryview for binary fields"""
        encrypted = encrypt_value('shpat_secret')
        self.assertEqual(decrypt_value(memoryview(encrypted)), 'shpat_secret')

    def test_empty_values(self):
        self.assertIsNone(encrypt_value(''))
        self.assertIsNone(encrypt_value(None))
        self.assertIsNone(decrypt_value(None))

    def test_wrong_key_fails(self):
        """Values encrypted under another key cannot be read"""
        encrypted = encrypt_value('shpat_secret')
        with override_settings(ENCRYPTION_KEY=Fernet.generate_key().decode()):
            with self.assertRaises(InvalidToken):
                decrypt_value(encrypted)

    @override_settings(ENCRYPTION_KEY='')
    def test_missing_key_raises(self):
        with self.assertRaises(ValueError):
            encrypt_value('shpat_secret')


class HealthCheckTest(SimpleTestCase):

    def test_health_check(self):
        response = self.client.get('/health/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'healthy')
