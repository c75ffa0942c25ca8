"""
Tests for the OAuth code exchange.
"""
from unittest.mock import patch, Mock

import requests
from django.test import TestCase, override_settings

from .models import ShopCredential
from .oauth import AuthorizationError, authorize_shop, build_authorize_url, exchange_code, generate_state
from .store import CredentialStore


def token_response(status_code=200, json_data=None, text=''):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError('No JSON')
    else:
        response.json.return_value = json_data
    return response


@override_settings(
    SHOPIFY_API_KEY='test-key',
    SHOPIFY_API_SECRET='test-secret',
    SHOPIFY_SCOPES='read_products,write_products',
    SHOPIFY_REQUEST_TIMEOUT=10,
    SHOPIFY_SHOP_DOMAIN='',
    SHOPIFY_ACCESS_TOKEN='',
)
class OAuthTest(TestCase):

    def test_generate_state_is_random(self):
        self.assertNotEqual(generate_state(), generate_state())

    def test_build_authorize_url(self):
        url = build_authorize_url('demo.myshopify.com', 'https://app.example.com/auth/callback', 'nonce')
        self.assertTrue(url.startswith('https://demo.myshopify.com/admin/oauth/authorize?'))
        self.assertIn('client_id=test-key', url)
        self.assertIn('state=nonce', url)
        self.assertIn('redirect_uri=https%3A%2F%2Fapp.example.com%2Fauth%2Fcallback', url)

    @patch('shops.oauth.requests.post')
    def test_exchange_code_success(self, mock_post):
        mock_post.return_value = token_response(json_data={'access_token': 'shpat_x', 'scope': 'read_products'})

        token_data = exchange_code('demo.myshopify.com', 'code123')

        self.assertEqual(token_data['access_token'], 'shpat_x')
        self.assertEqual(mock_post.call_args[1]['timeout'], 10)

    @patch('shops.oauth.requests.post')
    def test_exchange_code_http_error(self, mock_post):
        mock_post.return_value = token_response(status_code=400, text='{"error":"invalid_request"}')

        with self.assertRaises(AuthorizationError) as ctx:
            exchange_code('demo.myshopify.com', 'expired')

        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn('invalid_request', ctx.exception.body)

    @patch('shops.oauth.requests.post')
    def test_exchange_code_network_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError('unreachable')

        with self.assertRaises(AuthorizationError):
            exchange_code('demo.myshopify.com', 'code123')

        self.assertEqual(mock_post.call_count, 1)

    @patch('shops.oauth.requests.post')
    def test_exchange_code_without_token(self, mock_post):
        mock_post.return_value = token_response(json_data={'errors': 'nope'})

        with self.assertRaises(AuthorizationError):
            exchange_code('demo.myshopify.com', 'code123')

    @patch('shops.oauth.requests.post')
    def test_exchange_code_invalid_json(self, mock_post):
        mock_post.return_value = token_response(text='<html>')

        with self.assertRaises(AuthorizationError):
            exchange_code('demo.myshopify.com', 'code123')

    @patch('shops.oauth.requests.post')
    def test_authorize_shop_saves_credential(self, mock_post):
        mock_post.return_value = token_response(json_data={'access_token': 'shpat_x', 'scope': 'read_products'})

        credential = authorize_shop('demo.myshopify.com', 'code123', CredentialStore())

        self.assertEqual(credential.access_token, 'shpat_x')
        record = ShopCredential.objects.get(shop_domain='demo.myshopify.com')
        self.assertEqual(record.scope, 'read_products')

    @patch('shops.oauth.requests.post')
    def test_reauthorization_overwrites(self, mock_post):
        store = CredentialStore()
        mock_post.return_value = token_response(json_data={'access_token': 'shpat_old'})
        authorize_shop('demo.myshopify.com', 'code1', store)
        mock_post.return_value = token_response(json_data={'access_token': 'shpat_new'})
        authorize_shop('demo.myshopify.com', 'code2', store)

        self.assertEqual(ShopCredential.objects.count(), 1)
        self.assertEqual(store.load('demo.myshopify.com').access_token, 'shpat_new')

    @patch('shops.oauth.requests.post')
    def test_failed_authorization_stores_nothing(self, mock_post):
        mock_post.return_value = token_response(status_code=403, text='forbidden')
        store = CredentialStore()

        with self.assertRaises(AuthorizationError):
            authorize_shop('demo.myshopify.com', 'code123', store)

        self.assertIsNone(store.load('demo.myshopify.com'))
