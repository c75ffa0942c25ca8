"""
Shop installations and their Shopify Admin API credentials.
"""
from django.db import models
from core.models import TimeStampedModel
from core.encryption import decrypt_value


class ShopCredential(TimeStampedModel):
    """
    The access token for one installed shop.

    One row per shop domain. Re-installing the app overwrites the token;
    expiry is owned by Shopify, so rows are never expired locally.
    """
    shop_domain = models.CharField(
        max_length=255,
        unique=True,
        help_text='Shop domain, e.g. example.myshopify.com'
    )
    access_token_encrypted = models.BinaryField()
    scope = models.CharField(
        max_length=500,
        blank=True,
        help_text='Scopes granted at install time'
    )

    class Meta:
        db_table = 'shop_credentials'
        ordering = ['shop_domain']
        verbose_name = 'Shop Credential'
        verbose_name_plural = 'Shop Credentials'

    def __str__(self):
        return self.shop_domain

    def get_access_token(self):
        """Decrypt and return the access token"""
        return decrypt_value(self.access_token_encrypted)

    @property
    def access_token(self):
        return self.get_access_token()
