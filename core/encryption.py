"""
Symmetric encryption for secrets stored in the database.

Values are encrypted with Fernet using settings.ENCRYPTION_KEY.
"""
from django.conf import settings
from cryptography.fernet import Fernet


def _get_fernet():
    encryption_key = getattr(settings, 'ENCRYPTION_KEY', None)
    if not encryption_key:
        raise ValueError(
            'ENCRYPTION_KEY not configured in settings. '
            'Generate with: from cryptography.fernet import Fernet; Fernet.generate_key()'
        )
    return Fernet(encryption_key.encode() if isinstance(encryption_key, str) else encryption_key)


def encrypt_value(raw_value):
    """
    Encrypt a plaintext string.

    Args:
        raw_value (str): The plaintext value

    Returns:
        bytes or None: The encrypted token, or None for an empty value
    """
    if not raw_value:
        return None
    return _get_fernet().encrypt(raw_value.encode())


def decrypt_value(encrypted_value):
    """
    Decrypt a value produced by encrypt_value.

    Returns:
        str or None: The plaintext value, or None if nothing is stored
    """
    if not encrypted_value:
        return None
    # BinaryField may hand back a memoryview depending on the backend
    return _get_fernet().decrypt(bytes(encrypted_value)).decode()
