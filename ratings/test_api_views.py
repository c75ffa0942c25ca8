"""
Tests for the rating API endpoints.
"""
import json
from unittest.mock import patch

from cryptography.fernet import Fernet
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from metafields.testing import InMemoryMetafieldClient
from ratings.locks import _product_locks
from shops.factories import ShopCredentialFactory

SHOP = 'demo.myshopify.com'


@override_settings(SHOPIFY_SHOP_DOMAIN='', SHOPIFY_ACCESS_TOKEN='')
class RatingAPITestCase(TestCase):
    """Installed shop with an in-memory metafield store"""

    def setUp(self):
        ShopCredentialFactory(shop_domain=SHOP)
        self.metafields = InMemoryMetafieldClient()

        patcher = patch('ratings.services.MetafieldClient', return_value=self.metafields)
        self.mock_client_class = patcher.start()
        self.addCleanup(patcher.stop)

        self.client = APIClient()

    def set_history(self, product_id, history):
        self.metafields.fields[(str(product_id), 'custom', 'star_ratings')] = json.dumps(history)

    def get_history(self, product_id):
        return json.loads(self.metafields.fields[(str(product_id), 'custom', 'star_ratings')])

    def submit(self, data):
        return self.client.post('/submit-rating', data, format='json')


class ProductRatingsViewTest(RatingAPITestCase):

    def test_get_ratings(self):
        self.set_history(123, [5, 5, 4])

        response = self.client.get('/reviews/123', {'shop': SHOP})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'starRatings': [5, 5, 4], 'avgRating': 4.7, 'totalRatings': 3})

    def test_get_ratings_empty(self):
        response = self.client.get('/reviews/123', {'shop': SHOP})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'starRatings': [], 'avgRating': 0.0, 'totalRatings': 0})

    def test_corrupt_history_is_empty(self):
        self.metafields.fields[('123', 'custom', 'star_ratings')] = 'not-json'

        response = self.client.get('/reviews/123', {'shop': SHOP})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['starRatings'], [])

    def test_unknown_shop_is_unauthorized(self):
        """No credential: rejected before any Shopify call"""
        response = self.client.get('/reviews/123', {'shop': 'other.myshopify.com'})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error_code'], 'shop_not_authorized')
        self.mock_client_class.assert_not_called()
        self.assertEqual(self.metafields.calls, [])

    def test_undecryptable_credential_is_unauthorized(self):
        with override_settings(ENCRYPTION_KEY=Fernet.generate_key().decode()):
            ShopCredentialFactory(shop_domain='rotated.myshopify.com')

        with self.assertLogs('shops.store', level='ERROR'):
            response = self.client.get('/reviews/123', {'shop': 'rotated.myshopify.com'})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error_code'], 'shop_not_authorized')
        self.mock_client_class.assert_not_called()

    def test_missing_shop(self):
        response = self.client.get('/reviews/123')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error_code'], 'validation_error')

    def test_remote_read_failure(self):
        self.metafields.fail_reads.add(('custom', 'star_ratings'))

        response = self.client.get('/reviews/123', {'shop': SHOP})

        self.assertEqual(response.status_code, 500)
        body = response.json()
        self.assertEqual(body['error_code'], 'remote_error')
        self.assertNotIn('503', body['error'])

    def test_write_back_failure_still_returns(self):
        self.set_history(123, [3])
        self.metafields.fail_writes.add(('reviews', 'average_rating'))

        response = self.client.get('/reviews/123', {'shop': SHOP})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['avgRating'], 3.0)


class SubmitRatingViewTest(RatingAPITestCase):

    def test_first_rating(self):
        response = self.submit({'productId': '123', 'rating': 4, 'shopDomain': SHOP})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True, 'newAvgRating': '4.0', 'totalRatings': 1})
        self.assertEqual(self.get_history(123), [4])

    def test_adds_to_existing_ratings(self):
        self.set_history(123, [5, 5, 4])

        response = self.submit({'productId': 123, 'rating': 1, 'shopDomain': SHOP})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['newAvgRating'], '3.8')
        self.assertEqual(response.json()['totalRatings'], 4)
        self.assertEqual(self.get_history(123), [5, 5, 4, 1])
        self.assertEqual(self.metafields.fields[('123', 'reviews', 'total_ratings')], '4')

    def test_duplicate_submissions_both_count(self):
        self.submit({'productId': '123', 'rating': 5, 'shopDomain': SHOP})
        response = self.submit({'productId': '123', 'rating': 5, 'shopDomain': SHOP})

        self.assertEqual(response.json()['totalRatings'], 2)

    def test_invalid_ratings_rejected(self):
        for rating in [0, 6, 3.5, None, '4', True]:
            response = self.submit({'productId': '123', 'rating': rating, 'shopDomain': SHOP})
            self.assertEqual(response.status_code, 400, rating)
            self.assertEqual(response.json()['error_code'], 'validation_error')

        self.mock_client_class.assert_not_called()
        self.assertEqual(self.metafields.calls, [])

    def test_missing_fields_rejected(self):
        for data in [{'rating': 4, 'shopDomain': SHOP}, {'productId': '123', 'shopDomain': SHOP},
                     {'productId': '', 'rating': 4, 'shopDomain': SHOP}]:
            response = self.submit(data)
            self.assertEqual(response.status_code, 400, data)

        self.assertEqual(self.metafields.calls, [])

    def test_missing_shop(self):
        response = self.submit({'productId': '123', 'rating': 4})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.metafields.calls, [])

    def test_unknown_shop_is_unauthorized(self):
        response = self.submit({'productId': '123', 'rating': 4, 'shopDomain': 'other.myshopify.com'})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['success'], False)
        self.mock_client_class.assert_not_called()

    def test_write_failure(self):
        self.metafields.fail_writes.add(('custom', 'star_ratings'))

        response = self.submit({'productId': '123', 'rating': 4, 'shopDomain': SHOP})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()['success'], False)
        self.assertEqual(response.json()['error_code'], 'remote_error')

    def test_failed_submissions_leave_no_lock_entries(self):
        self.metafields.fail_reads.add(('custom', 'star_ratings'))

        for n in range(50):
            response = self.submit({'productId': f'random-{n}', 'rating': 4, 'shopDomain': SHOP})
            self.assertEqual(response.status_code, 500)

        self.assertEqual([key for key in _product_locks if key[0] == SHOP], [])

    def test_partial_failure_heals_on_read(self):
        """History saved, average write failed: the next GET shows the right average"""
        self.set_history(123, [5, 5, 4])
        self.metafields.fail_writes.add(('reviews', 'average_rating'))

        response = self.submit({'productId': '123', 'rating': 1, 'shopDomain': SHOP})
        self.assertEqual(response.status_code, 500)

        self.metafields.fail_writes.clear()
        response = self.client.get('/reviews/123', {'shop': SHOP})

        self.assertEqual(response.json()['avgRating'], 3.8)
        self.assertEqual(self.metafields.fields[('123', 'reviews', 'average_rating')], '3.8')


@override_settings(SHOPIFY_SHOP_DOMAIN='single.myshopify.com', SHOPIFY_ACCESS_TOKEN='shpat_static')
class SingleTenantRatingAPITest(TestCase):
    """With a configured shop the widget may omit the shop domain"""

    def setUp(self):
        self.metafields = InMemoryMetafieldClient()
        patcher = patch('ratings.services.MetafieldClient', return_value=self.metafields)
        self.mock_client_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = APIClient()

    def test_submit_without_shop(self):
        response = self.client.post('/submit-rating', {'productId': '9', 'rating': 2}, format='json')

        self.assertEqual(response.status_code, 200)
        credential = self.mock_client_class.call_args[0][0]
        self.assertEqual(credential.shop_domain, 'single.myshopify.com')
        self.assertEqual(credential.access_token, 'shpat_static')

    def test_read_without_shop(self):
        response = self.client.get('/reviews/9')
        self.assertEqual(response.status_code, 200)
