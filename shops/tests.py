"""
Tests for the credential store and install flow views.
"""
from unittest.mock import patch, Mock
from urllib.parse import urlparse, parse_qs

from cryptography.fernet import Fernet
from django.test import TestCase, override_settings

from .models import ShopCredential
from .factories import ShopCredentialFactory
from .store import Credential, CredentialStore, is_valid_shop_domain


def token_response(status_code=200, json_data=None, text=''):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError('No JSON')
    else:
        response.json.return_value = json_data
    return response


@override_settings(SHOPIFY_SHOP_DOMAIN='', SHOPIFY_ACCESS_TOKEN='')
class CredentialStoreTest(TestCase):
    """Test per-shop credential storage"""

    def setUp(self):
        self.store = CredentialStore()

    def test_load_unknown_shop(self):
        """A shop that never installed the app has no credential"""
        self.assertIsNone(self.store.load('nobody.myshopify.com'))
        self.assertIsNone(self.store.load(''))

    def test_save_and_load(self):
        self.store.save('demo.myshopify.com', 'shpat_one', scope='read_products')

        credential = self.store.load('demo.myshopify.com')
        self.assertEqual(credential, Credential('demo.myshopify.com', 'shpat_one'))

    def test_save_overwrites(self):
        """Re-installing replaces the token instead of adding a row"""
        self.store.save('demo.myshopify.com', 'shpat_one')
        self.store.save('demo.myshopify.com', 'shpat_two')

        self.assertEqual(ShopCredential.objects.count(), 1)
        self.assertEqual(self.store.load('demo.myshopify.com').access_token, 'shpat_two')

    def test_shops_are_isolated(self):
        self.store.save('a.myshopify.com', 'shpat_a')
        self.store.save('b.myshopify.com', 'shpat_b')

        self.assertEqual(self.store.load('a.myshopify.com').access_token, 'shpat_a')
        self.assertEqual(self.store.load('b.myshopify.com').access_token, 'shpat_b')

    def test_domain_normalized(self):
        self.store.save(' Demo.MyShopify.com ', 'shpat_one')
        self.assertIsNotNone(self.store.load('demo.myshopify.com'))

    def test_token_encrypted_at_rest(self):
        self.store.save('demo.myshopify.com', 'shpat_plaintext')

        record = ShopCredential.objects.get(shop_domain='demo.myshopify.com')
        self.assertNotIn(b'shpat_plaintext', bytes(record.access_token_encrypted))
        self.assertEqual(record.access_token, 'shpat_plaintext')

    def test_token_from_rotated_key_is_unauthorized(self):
        """A token encrypted under an old key reads as a shop that must re-install"""
        with override_settings(ENCRYPTION_KEY=Fernet.generate_key().decode()):
            self.store.save('demo.myshopify.com', 'shpat_old_key')

        with self.assertLogs('shops.store', level='ERROR'):
            self.assertIsNone(self.store.load('demo.myshopify.com'))

        self.store.save('demo.myshopify.com', 'shpat_reinstalled')
        self.assertEqual(self.store.load('demo.myshopify.com').access_token, 'shpat_reinstalled')

    def test_survives_new_store_instance(self):
        """Credentials are read from the database, not from the store object"""
        self.store.save('demo.myshopify.com', 'shpat_one')
        self.assertEqual(CredentialStore().load('demo.myshopify.com').access_token, 'shpat_one')

    def test_save_requires_token(self):
        with self.assertRaises(ValueError):
            self.store.save('demo.myshopify.com', '')

    def test_factory_credential_loads(self):
        ShopCredentialFactory(shop_domain='factory.myshopify.com', access_token='shpat_factory')
        self.assertEqual(self.store.load('factory.myshopify.com').access_token, 'shpat_factory')


@override_settings(SHOPIFY_SHOP_DOMAIN='single.myshopify.com', SHOPIFY_ACCESS_TOKEN='shpat_static')
class SingleTenantCredentialStoreTest(TestCase):
    """A configured shop works without an OAuth install"""

    def test_configured_shop(self):
        store = CredentialStore()
        self.assertTrue(store.is_single_tenant)
        self.assertEqual(store.default_shop_domain, 'single.myshopify.com')
        self.assertEqual(store.load('single.myshopify.com').access_token, 'shpat_static')

    def test_other_shops_still_need_install(self):
        self.assertIsNone(CredentialStore().load('other.myshopify.com'))

    def test_installed_token_takes_precedence(self):
        store = CredentialStore()
        store.save('single.myshopify.com', 'shpat_oauth')
        self.assertEqual(store.load('single.myshopify.com').access_token, 'shpat_oauth')


class ShopDomainValidationTest(TestCase):

    def test_valid(self):
        for shop in ['demo.myshopify.com', 'my-store.myshopify.com', 'shop.example.com', 'Demo.MyShopify.com']:
            self.assertTrue(is_valid_shop_domain(shop), shop)

    def test_invalid(self):
        for shop in ['', 'evil.com/path', 'user@evil.com', 'demo.myshopify.com:8080', '-bad.com', 'a..b']:
            self.assertFalse(is_valid_shop_domain(shop), shop)


@override_settings(
    SHOPIFY_API_KEY='test-key',
    SHOPIFY_API_SECRET='test-secret',
    SHOPIFY_SCOPES='read_products,write_products',
    SHOPIFY_REDIRECT_URI='https://ratings.example.com/auth/callback',
    SHOPIFY_SHOP_DOMAIN='',
    SHOPIFY_ACCESS_TOKEN='',
)
class InstallFlowViewTest(TestCase):
    """Test /, /auth and /auth/callback"""

    def test_entry_redirects_to_auth(self):
        response = self.client.get('/', {'shop': 'demo.myshopify.com'})
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response['Location'], '/auth?shop=demo.myshopify.com')

    def test_entry_missing_shop(self):
        response = self.client.get('/')
        self.assertEqual(response.status_code, 400)

    def test_auth_redirects_to_shopify(self):
        response = self.client.get('/auth', {'shop': 'demo.myshopify.com'})

        self.assertEqual(response.status_code, 302)
        location = urlparse(response['Location'])
        query = parse_qs(location.query)
        self.assertEqual(location.netloc, 'demo.myshopify.com')
        self.assertEqual(location.path, '/admin/oauth/authorize')
        self.assertEqual(query['client_id'], ['test-key'])
        self.assertEqual(query['scope'], ['read_products,write_products'])
        self.assertEqual(query['redirect_uri'], ['https://ratings.example.com/auth/callback'])
        self.assertEqual(len(query['state'][0]), 32)

    def test_auth_missing_shop(self):
        response = self.client.get('/auth')
        self.assertEqual(response.status_code, 400)

    def test_auth_invalid_shop(self):
        response = self.client.get('/auth', {'shop': 'evil.com/steal?x='})
        self.assertEqual(response.status_code, 400)

    @override_settings(SHOPIFY_REDIRECT_URI='')
    def test_redirect_uri_derived_from_request(self):
        response = self.client.get('/auth', {'shop': 'demo.myshopify.com'})
        query = parse_qs(urlparse(response['Location']).query)
        self.assertEqual(query['redirect_uri'], ['http://testserver/auth/callback'])

    @patch('shops.oauth.requests.post')
    def test_callback_stores_credential(self, mock_post):
        mock_post.return_value = token_response(json_data={
            'access_token': 'shpat_new', 'scope': 'read_products,write_products'
        })

        response = self.client.get('/auth/callback', {'shop': 'demo.myshopify.com', 'code': 'abc123'})

        self.assertEqual(response.status_code, 200)
        self.assertIn('App installed', response.content.decode())
        self.assertEqual(CredentialStore().load('demo.myshopify.com').access_token, 'shpat_new')

        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], 'https://demo.myshopify.com/admin/oauth/access_token')
        self.assertEqual(kwargs['json'], {
            'client_id': 'test-key',
            'client_secret': 'test-secret',
            'code': 'abc123',
        })

    @patch('shops.oauth.requests.post')
    def test_callback_exchange_failure(self, mock_post):
        """A rejected code leaves the shop unauthorized"""
        mock_post.return_value = token_response(status_code=400, text='invalid_request')

        with self.assertLogs('shops', level='ERROR'):
            response = self.client.get('/auth/callback', {'shop': 'demo.myshopify.com', 'code': 'bad'})

        self.assertEqual(response.status_code, 500)
        self.assertFalse(ShopCredential.objects.exists())

    def test_callback_missing_params(self):
        self.assertEqual(self.client.get('/auth/callback', {'shop': 'demo.myshopify.com'}).status_code, 400)
        self.assertEqual(self.client.get('/auth/callback', {'code': 'abc'}).status_code, 400)

    @patch('shops.oauth.requests.post')
    def test_callback_state_mismatch(self, mock_post):
        """Once this session started the flow, the callback must echo its state"""
        self.client.get('/auth', {'shop': 'demo.myshopify.com'})

        response = self.client.get('/auth/callback', {
            'shop': 'demo.myshopify.com', 'code': 'abc', 'state': 'forged'
        })

        self.assertEqual(response.status_code, 400)
        mock_post.assert_not_called()

    @patch('shops.oauth.requests.post')
    def test_callback_state_match(self, mock_post):
        mock_post.return_value = token_response(json_data={'access_token': 'shpat_new'})

        redirect = self.client.get('/auth', {'shop': 'demo.myshopify.com'})
        state = parse_qs(urlparse(redirect['Location']).query)['state'][0]

        response = self.client.get('/auth/callback', {
            'shop': 'demo.myshopify.com', 'code': 'abc', 'state': state
        })

        self.assertEqual(response.status_code, 200)
