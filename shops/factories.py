"""
Factory definitions for shop models
"""
import factory
from factory.django import DjangoModelFactory
from core.encryption import encrypt_value
from .models import ShopCredential


class ShopCredentialFactory(DjangoModelFactory):
    """Factory for creating installed shops"""

    class Meta:
        model = ShopCredential
        django_get_or_create = ('shop_domain',)

    class Params:
        access_token = factory.Sequence(lambda n: f'shpat_test_token_{n}')

    shop_domain = factory.Sequence(lambda n: f'test-shop-{n}.myshopify.com')
    access_token_encrypted = factory.LazyAttribute(lambda obj: encrypt_value(obj.access_token))
    scope = 'read_products,write_products'
