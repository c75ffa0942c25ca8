"""
Tests for rating aggregation.
"""
import json
import threading
from decimal import Decimal, ROUND_HALF_UP
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase, override_settings

from metafields.client import MetafieldClient, RemoteReadError, RemoteWriteError
from metafields.testing import InMemoryMetafieldClient
from shops.factories import ShopCredentialFactory
from shops.store import CredentialStore
from .exceptions import RatingValidationError, ShopNotAuthorized
from .locks import _product_locks, product_lock
from .services import (
    RatingAggregator,
    build_aggregate,
    compute_average,
    get_aggregator,
    parse_history,
)

HISTORY = ('custom', 'star_ratings')
AVERAGE = ('reviews', 'average_rating')
COUNT = ('reviews', 'total_ratings')


def history_field(product_id):
    return (str(product_id),) + HISTORY


class ComputeAverageTest(SimpleTestCase):
    """Average is the exact mean, rounded half-up to one decimal"""

    def test_empty_history(self):
        self.assertEqual(compute_average([]), Decimal('0'))
        aggregate = build_aggregate([])
        self.assertEqual(aggregate.count, 0)
        self.assertEqual(aggregate.average_display, '0.0')

    def test_matches_rounded_mean(self):
        sequences = [
            [1], [5], [4, 5], [1, 2], [5, 5, 4], [5, 5, 4, 1],
            [3, 3, 4], [1, 1, 1, 2], [2, 2, 3, 3, 3, 4, 5], [5] * 50 + [1],
        ]
        for history in sequences:
            expected = (Decimal(sum(history)) / len(history)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
            self.assertEqual(compute_average(history), expected, history)

    def test_rounds_half_up(self):
        # 3.75, 1.25 and 4.45 sit exactly on the rounding boundary
        self.assertEqual(compute_average([5, 5, 4, 1]), Decimal('3.8'))
        self.assertEqual(compute_average([1, 1, 1, 2]), Decimal('1.3'))
        self.assertEqual(compute_average([5] * 9 + [4] * 11), Decimal('4.5'))
        self.assertEqual(build_aggregate([1, 1, 1, 2]).average_display, '1.3')

    def test_whole_numbers_keep_one_decimal(self):
        self.assertEqual(build_aggregate([4]).average_display, '4.0')


class ParseHistoryTest(SimpleTestCase):
    """Stored histories that cannot be read are treated as empty"""

    def test_missing_value(self):
        self.assertEqual(parse_history(None), [])
        self.assertEqual(parse_history(''), [])

    def test_valid_value(self):
        self.assertEqual(parse_history('[5, 5, 4]'), [5, 5, 4])
        self.assertEqual(parse_history('[]'), [])

    def test_corrupt_values(self):
        for raw in ['not json', '{"a": 1}', '"5"', '5', '[1, 2,', '[0, 3]', '[6]', '[3.5]',
                    '[true]', '["4"]', '[null]']:
            with self.assertLogs('ratings.services', level='WARNING'):
                self.assertEqual(parse_history(raw), [], raw)


class ReadAggregateTest(SimpleTestCase):

    def setUp(self):
        self.client = InMemoryMetafieldClient()
        self.aggregator = RatingAggregator(self.client, shop_domain='test.myshopify.com')

    def test_no_ratings(self):
        aggregate = self.aggregator.read_aggregate('123')
        self.assertEqual(aggregate.history, [])
        self.assertEqual(aggregate.average, Decimal('0'))
        self.assertEqual(aggregate.count, 0)

    def test_existing_ratings(self):
        self.client.fields[history_field(123)] = '[5, 5, 4]'
        aggregate = self.aggregator.read_aggregate(123)
        self.assertEqual(aggregate.history, [5, 5, 4])
        self.assertEqual(aggregate.average, Decimal('4.7'))
        self.assertEqual(aggregate.count, 3)

    def test_corrupt_history_reads_as_empty(self):
        self.client.fields[history_field(123)] = '{{{garbage'
        with self.assertLogs('ratings.services', level='WARNING'):
            aggregate = self.aggregator.read_aggregate('123')
        self.assertEqual((aggregate.history, aggregate.average, aggregate.count), ([], Decimal('0'), 0))

    def test_writes_back_average(self):
        self.client.fields[history_field(123)] = '[5, 5, 4]'
        self.client.fields[('123',) + AVERAGE] = '2.0'
        self.aggregator.read_aggregate('123')
        self.assertEqual(self.client.fields[('123',) + AVERAGE], '4.7')
        self.assertEqual(self.client.types[('123',) + AVERAGE], 'number_decimal')

    def test_write_back_failure_does_not_fail_read(self):
        self.client.fields[history_field(123)] = '[4, 5]'
        self.client.fail_writes.add(AVERAGE)
        with self.assertLogs('ratings.services', level='WARNING'):
            aggregate = self.aggregator.read_aggregate('123')
        self.assertEqual(aggregate.average, Decimal('4.5'))
        self.assertEqual(aggregate.count, 2)

    def test_read_failure_is_raised(self):
        self.client.fail_reads.add(HISTORY)
        with self.assertRaises(RemoteReadError):
            self.aggregator.read_aggregate('123')


class SubmitRatingTest(SimpleTestCase):

    def setUp(self):
        self.client = InMemoryMetafieldClient()
        self.aggregator = RatingAggregator(self.client, shop_domain='test.myshopify.com')

    def test_first_rating(self):
        aggregate = self.aggregator.submit_rating('123', 4)
        self.assertEqual(aggregate.average_display, '4.0')
        self.assertEqual(aggregate.count, 1)
        self.assertEqual(json.loads(self.client.fields[history_field(123)]), [4])
        self.assertEqual(self.client.fields[('123',) + AVERAGE], '4.0')
        self.assertEqual(self.client.fields[('123',) + COUNT], '1')

    def test_appends_to_existing_history(self):
        self.client.fields[history_field(123)] = '[5,5,4]'
        aggregate = self.aggregator.submit_rating('123', 1)
        self.assertEqual(aggregate.history, [5, 5, 4, 1])
        self.assertEqual(aggregate.count, 4)
        self.assertEqual(aggregate.average, Decimal('3.8'))
        self.assertEqual(json.loads(self.client.fields[history_field(123)]), [5, 5, 4, 1])

    def test_writes_in_order_with_types(self):
        self.aggregator.submit_rating('123', 3)
        self.assertEqual(
            [call[2:] for call in self.client.writes],
            [HISTORY, AVERAGE, COUNT]
        )
        self.assertEqual(self.client.types[history_field(123)], 'json')
        self.assertEqual(self.client.types[('123',) + COUNT], 'number_integer')

    def test_same_rating_twice_counts_twice(self):
        first = self.aggregator.submit_rating('123', 5)
        second = self.aggregator.submit_rating('123', 5)
        self.assertEqual(second.count, first.count + 1)
        self.assertEqual(self.aggregator.read_aggregate('123').count, 2)

    def test_round_trip(self):
        for rating in [5, 3, 4, 4, 1]:
            self.aggregator.submit_rating('123', rating)
        aggregate = self.aggregator.read_aggregate('123')
        self.assertEqual(aggregate.history, [5, 3, 4, 4, 1])
        self.assertEqual(aggregate.average, Decimal('3.4'))

    def test_corrupt_history_starts_over(self):
        self.client.fields[history_field(123)] = 'oops'
        with self.assertLogs('ratings.services', level='WARNING'):
            aggregate = self.aggregator.submit_rating('123', 2)
        self.assertEqual(aggregate.history, [2])

    def test_invalid_ratings_make_no_remote_calls(self):
        for rating in [0, 6, 3.5, None, '4', True, -1]:
            with self.assertRaises(RatingValidationError):
                self.aggregator.submit_rating('123', rating)
        self.assertEqual(self.client.calls, [])

    def test_missing_product_id_makes_no_remote_calls(self):
        for product_id in ['', '   ', None]:
            with self.assertRaises(RatingValidationError):
                self.aggregator.submit_rating(product_id, 4)
        self.assertEqual(self.client.calls, [])

    def test_read_failure_aborts_submission(self):
        self.client.fail_reads.add(HISTORY)
        with self.assertRaises(RemoteReadError):
            self.aggregator.submit_rating('123', 4)
        self.assertEqual(self.client.writes, [])

    def test_history_write_failure_stops_remaining_writes(self):
        self.client.fail_writes.add(HISTORY)
        with self.assertRaises(RemoteWriteError):
            self.aggregator.submit_rating('123', 4)
        self.assertEqual(len(self.client.writes), 1)
        self.assertNotIn(('123',) + AVERAGE, self.client.fields)

    def test_partial_write_heals_on_next_read(self):
        """History saved but the average write failed: the next read recomputes it"""
        self.client.fields[history_field(123)] = '[5, 5, 4]'
        self.client.fields[('123',) + AVERAGE] = '4.7'
        self.client.fail_writes.add(AVERAGE)

        with self.assertRaises(RemoteWriteError):
            self.aggregator.submit_rating('123', 1)

        self.assertEqual(json.loads(self.client.fields[history_field(123)]), [5, 5, 4, 1])
        self.assertEqual(self.client.fields[('123',) + AVERAGE], '4.7')
        self.assertNotIn(('123',) + COUNT, self.client.fields)

        self.client.fail_writes.clear()
        aggregate = self.aggregator.read_aggregate('123')
        self.assertEqual(aggregate.average, Decimal('3.8'))
        self.assertEqual(aggregate.count, 4)
        self.assertEqual(self.client.fields[('123',) + AVERAGE], '3.8')

    @patch('ratings.services.product_lock')
    def test_submissions_hold_product_lock(self, mock_lock):
        RatingAggregator(self.client, shop_domain='a.myshopify.com', serialize_submissions=True).submit_rating('9', 4)
        mock_lock.assert_called_once_with('a.myshopify.com', '9')

    @patch('ratings.services.product_lock')
    def test_lock_can_be_disabled(self, mock_lock):
        RatingAggregator(self.client, serialize_submissions=False).submit_rating('9', 4)
        mock_lock.assert_not_called()


class ReconcileTest(SimpleTestCase):

    def test_rewrites_average_and_count(self):
        client = InMemoryMetafieldClient({
            history_field(7): '[2, 3]',
            ('7',) + AVERAGE: '5.0',
            ('7',) + COUNT: '9',
        })
        aggregate = RatingAggregator(client).reconcile('7')
        self.assertEqual(aggregate.average_display, '2.5')
        self.assertEqual(client.fields[('7',) + AVERAGE], '2.5')
        self.assertEqual(client.fields[('7',) + COUNT], '2')
        self.assertEqual([call[2:] for call in client.writes], [AVERAGE, COUNT])


@override_settings(SHOPIFY_SHOP_DOMAIN='', SHOPIFY_ACCESS_TOKEN='')
class GetAggregatorTest(TestCase):

    def test_missing_shop(self):
        with self.assertRaises(RatingValidationError):
            get_aggregator('', CredentialStore())

    def test_unknown_shop(self):
        with self.assertRaises(ShopNotAuthorized):
            get_aggregator('unknown.myshopify.com', CredentialStore())

    def test_installed_shop(self):
        ShopCredentialFactory(shop_domain='installed.myshopify.com', access_token='shpat_abc')
        aggregator = get_aggregator('Installed.myshopify.com', CredentialStore())
        self.assertIsInstance(aggregator.client, MetafieldClient)
        self.assertEqual(aggregator.shop_domain, 'installed.myshopify.com')
        self.assertEqual(aggregator.client.headers['X-Shopify-Access-Token'], 'shpat_abc')


@override_settings(SHOPIFY_SHOP_DOMAIN='', SHOPIFY_ACCESS_TOKEN='')
class ReconcileRatingsCommandTest(TestCase):

    def setUp(self):
        ShopCredentialFactory(shop_domain='cmd.myshopify.com')
        self.client = InMemoryMetafieldClient({
            history_field(1): '[4, 4, 5]',
            history_field(2): '[1]',
        })
        patcher = patch('ratings.services.MetafieldClient', return_value=self.client)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_reconciles_each_product(self):
        out = StringIO()
        call_command('reconcile_ratings', '1', '2', '--shop', 'cmd.myshopify.com', stdout=out)
        self.assertEqual(self.client.fields[('1',) + AVERAGE], '4.3')
        self.assertEqual(self.client.fields[('2',) + COUNT], '1')
        self.assertIn('1: average 4.3 over 3 ratings', out.getvalue())

    def test_unknown_shop(self):
        with self.assertRaises(CommandError):
            call_command('reconcile_ratings', '1', '--shop', 'nope.myshopify.com', stdout=StringIO())

    def test_reports_failures(self):
        self.client.fail_writes.add(COUNT)
        with self.assertRaises(CommandError):
            call_command('reconcile_ratings', '1', '--shop', 'cmd.myshopify.com',
                         stdout=StringIO(), stderr=StringIO())


class ProductLockTest(SimpleTestCase):

    def test_entry_exists_only_while_held(self):
        with product_lock('a.myshopify.com', 1):
            self.assertIn(('a.myshopify.com', '1'), _product_locks)
            self.assertNotIn(('b.myshopify.com', '1'), _product_locks)
        self.assertNotIn(('a.myshopify.com', '1'), _product_locks)

    def test_same_product_waits(self):
        order = []

        def submit():
            with product_lock('a.myshopify.com', 2):
                order.append('second')

        with product_lock('a.myshopify.com', 2):
            worker = threading.Thread(target=submit)
            worker.start()
            worker.join(0.1)
            self.assertTrue(worker.is_alive())
            order.append('first')

        worker.join(5)
        self.assertEqual(order, ['first', 'second'])
        self.assertNotIn(('a.myshopify.com', '2'), _product_locks)

    def test_lock_released_after_error(self):
        with self.assertRaises(RuntimeError):
            with product_lock('a.myshopify.com', 5):
                raise RuntimeError('boom')
        self.assertNotIn(('a.myshopify.com', '5'), _product_locks)

    def test_distinct_products_leave_no_entries(self):
        client = InMemoryMetafieldClient()
        client.fail_reads.add(HISTORY)
        aggregator = RatingAggregator(client, shop_domain='a.myshopify.com', serialize_submissions=True)

        for product_id in range(200):
            with self.assertRaises(RemoteReadError):
                aggregator.submit_rating(str(product_id), 4)

        self.assertEqual([key for key in _product_locks if key[0] == 'a.myshopify.com'], [])
