"""
Tests for the Shopify metafield client.
"""
from unittest.mock import patch, Mock

import requests
from django.test import SimpleTestCase, override_settings

from shops.store import Credential
from .client import MetafieldClient, RemoteReadError, RemoteWriteError


def mock_response(status_code=200, json_data=None, text=''):
    response = Mock()
    response.status_code = status_code
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError('No JSON object could be decoded')
    else:
        response.json.return_value = json_data
    return response


@override_settings(SHOPIFY_API_VERSION='2025-01', SHOPIFY_REQUEST_TIMEOUT=10)
class MetafieldClientReadTest(SimpleTestCase):

    def setUp(self):
        self.client = MetafieldClient(Credential('demo.myshopify.com', 'shpat_123'))

    @patch('metafields.client.requests.request')
    def test_get_field_request(self, mock_request):
        """Reads hit the product metafields endpoint with the access token header"""
        mock_request.return_value = mock_response(json_data={'metafields': []})

        self.client.get_field('42', 'custom', 'star_ratings')

        args, kwargs = mock_request.call_args
        self.assertEqual(args, ('get', 'https://demo.myshopify.com/admin/api/2025-01/products/42/metafields.json'))
        self.assertEqual(kwargs['params'], {'namespace': 'custom', 'key': 'star_ratings'})
        self.assertEqual(kwargs['headers']['X-Shopify-Access-Token'], 'shpat_123')
        self.assertEqual(kwargs['timeout'], 10)

    @patch('metafields.client.requests.request')
    def test_get_field_escapes_entity_id(self, mock_request):
        """Product IDs cannot add path segments, query strings or fragments"""
        mock_request.return_value = mock_response(json_data={'metafields': []})

        self.client.get_field('123?x=1#', 'custom', 'star_ratings')
        self.client.get_field('../orders/9', 'custom', 'star_ratings')

        urls = [call[0][1] for call in mock_request.call_args_list]
        self.assertEqual(urls, [
            'https://demo.myshopify.com/admin/api/2025-01/products/123%3Fx%3D1%23/metafields.json',
            'https://demo.myshopify.com/admin/api/2025-01/products/..%2Forders%2F9/metafields.json',
        ])

    @patch('metafields.client.requests.request')
    def test_get_field_returns_matching_value(self, mock_request):
        mock_request.return_value = mock_response(json_data={'metafields': [
            {'namespace': 'reviews', 'key': 'average_rating', 'value': '4.5'},
            {'namespace': 'custom', 'key': 'star_ratings', 'value': '[4, 5]'},
        ]})

        self.assertEqual(self.client.get_field('42', 'custom', 'star_ratings'), '[4, 5]')

    @patch('metafields.client.requests.request')
    def test_get_field_absent(self, mock_request):
        """A field that does not exist is None, not an error"""
        mock_request.return_value = mock_response(json_data={'metafields': []})
        self.assertIsNone(self.client.get_field('42', 'custom', 'star_ratings'))

    @patch('metafields.client.requests.request')
    def test_get_field_http_error(self, mock_request):
        mock_request.return_value = mock_response(status_code=401, text='[API] Invalid API key or access token')

        with self.assertRaises(RemoteReadError) as ctx:
            self.client.get_field('42', 'custom', 'star_ratings')

        self.assertEqual(ctx.exception.status_code, 401)
        self.assertIn('Invalid API key', ctx.exception.body)

    @patch('metafields.client.requests.request')
    def test_get_field_network_error(self, mock_request):
        mock_request.side_effect = requests.ConnectionError('connection refused')

        with self.assertRaises(RemoteReadError):
            self.client.get_field('42', 'custom', 'star_ratings')

    @patch('metafields.client.requests.request')
    def test_get_field_invalid_json(self, mock_request):
        mock_request.return_value = mock_response(status_code=200, text='<html>')

        with self.assertRaises(RemoteReadError):
            self.client.get_field('42', 'custom', 'star_ratings')

    def test_unsupported_owner_resource(self):
        with self.assertRaises(ValueError):
            self.client.get_field('42', 'custom', 'star_ratings', owner_resource='planet')


@override_settings(SHOPIFY_API_VERSION='2025-01', SHOPIFY_REQUEST_TIMEOUT=10)
class MetafieldClientWriteTest(SimpleTestCase):

    def setUp(self):
        self.client = MetafieldClient(Credential('demo.myshopify.com', 'shpat_123'))

    @patch('metafields.client.requests.request')
    def test_set_field_payload(self, mock_request):
        mock_request.return_value = mock_response(status_code=201, json_data={'metafield': {}})

        self.client.set_field('42', 'reviews', 'average_rating', '4.5', 'number_decimal')

        args, kwargs = mock_request.call_args
        self.assertEqual(args, ('post', 'https://demo.myshopify.com/admin/api/2025-01/metafields.json'))
        self.assertEqual(kwargs['json'], {
            'metafield': {
                'namespace': 'reviews',
                'key': 'average_rating',
                'value': '4.5',
                'type': 'number_decimal',
                'owner_resource': 'product',
                'owner_id': '42',
            }
        })

    @patch('metafields.client.requests.request')
    def test_set_field_rejected(self, mock_request):
        mock_request.return_value = mock_response(
            status_code=422, text='{"errors":{"value":["is invalid"]}}'
        )

        with self.assertRaises(RemoteWriteError) as ctx:
            self.client.set_field('42', 'reviews', 'total_ratings', 'x', 'number_integer')

        self.assertEqual(ctx.exception.status_code, 422)
        self.assertIn('is invalid', ctx.exception.body)

    @patch('metafields.client.requests.request')
    def test_set_field_network_error(self, mock_request):
        mock_request.side_effect = requests.Timeout('timed out')

        with self.assertRaises(RemoteWriteError):
            self.client.set_field('42', 'custom', 'star_ratings', '[1]', 'json')

        self.assertEqual(mock_request.call_count, 1)

    @patch('metafields.client.requests.request')
    def test_set_field_unsupported_type(self, mock_request):
        with self.assertRaises(ValueError):
            self.client.set_field('42', 'custom', 'star_ratings', '[1]', 'list.date')
        mock_request.assert_not_called()
