"""
Credential store for installed shops.

Holds one Admin API credential per shop. Credentials come from the
ShopCredential table (multi-tenant OAuth installs) or, for a single
configured shop, from settings (SHOPIFY_SHOP_DOMAIN / SHOPIFY_ACCESS_TOKEN).
"""
import logging
import re
from dataclasses import dataclass
from cryptography.fernet import InvalidToken
from django.conf import settings
from core.encryption import encrypt_value
from .models import ShopCredential

logger = logging.getLogger(__name__)

SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")


@dataclass(frozen=True)
class Credential:
    shop_domain: str
    access_token: str


def normalize_shop_domain(shop_domain):
    """Lowercase and strip a shop domain so lookups are consistent"""
    return (shop_domain or '').strip().lower()


def is_valid_shop_domain(shop_domain):
    """Shop domains are plain hostnames; anything else is never sent a request"""
    return bool(SHOP_DOMAIN_RE.match(normalize_shop_domain(shop_domain)))


class CredentialStore:
    """
    Per-shop credential lookup and storage.

    Create one per request and pass it to whatever needs Shopify access;
    the store keeps no state between instances.
    """

    def __init__(self, static_shop_domain=None, static_access_token=None):
        if static_shop_domain is None:
            static_shop_domain = getattr(settings, 'SHOPIFY_SHOP_DOMAIN', '')
        if static_access_token is None:
            static_access_token = getattr(settings, 'SHOPIFY_ACCESS_TOKEN', '')
        self.static_shop_domain = normalize_shop_domain(static_shop_domain)
        self.static_access_token = static_access_token

    @property
    def is_single_tenant(self):
        return bool(self.static_shop_domain and self.static_access_token)

    @property
    def default_shop_domain(self):
        """Shop used when a request carries no shop context (single-tenant only)"""
        return self.static_shop_domain if self.is_single_tenant else None

    def save(self, shop_domain, access_token, scope=''):
        """
        Create or overwrite the credential for a shop.

        Returns:
            Credential: The stored credential
        """
        shop_domain = normalize_shop_domain(shop_domain)
        if not shop_domain or not access_token:
            raise ValueError('shop_domain and access_token are required')

        _, created = ShopCredential.objects.update_or_create(
            shop_domain=shop_domain,
            defaults={
                'access_token_encrypted': encrypt_value(access_token),
                'scope': scope or '',
            },
        )

        logger.info(f"{'Stored' if created else 'Updated'} credential for shop {shop_domain}")
        return Credential(shop_domain=shop_domain, access_token=access_token)

    def load(self, shop_domain):
        """
        Look up the credential for a shop.

        Returns:
            Credential or None: None when the shop has never been authorized, or
                its stored token was encrypted under another ENCRYPTION_KEY
        """
        shop_domain = normalize_shop_domain(shop_domain)
        if not shop_domain:
            return None

        try:
            record = ShopCredential.objects.get(shop_domain=shop_domain)
        except ShopCredential.DoesNotExist:
            record = None

        if record is not None:
            try:
                access_token = record.get_access_token()
            except InvalidToken:
                # Encrypted under a previous ENCRYPTION_KEY; the shop must re-authorize
                logger.error(f"Stored credential for shop {shop_domain} cannot be decrypted")
                access_token = None
            if access_token:
                return Credential(shop_domain=shop_domain, access_token=access_token)

        if self.is_single_tenant and shop_domain == self.static_shop_domain:
            return Credential(shop_domain=shop_domain, access_token=self.static_access_token)

        return None
