"""
Star rating aggregation backed by Shopify product metafields.

The rating history of a product is the source of truth, stored as a JSON
array of integers in custom.star_ratings. The average and count metafields
are derived from it and rewritten after every change:

    custom.star_ratings     json            [5, 5, 4, 1]
    reviews.average_rating  number_decimal  "3.8"
    reviews.total_ratings   number_integer  "4"

Shopify offers no multi-field transaction, so writes happen in a fixed
order with the history first. If a later write fails, the next read
recomputes the average from the already-updated history and writes it back.
"""
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from django.conf import settings

from metafields.client import (
    FIELD_TYPE_DECIMAL,
    FIELD_TYPE_INTEGER,
    FIELD_TYPE_JSON,
    MetafieldClient,
    RemoteWriteError,
)
from shops.store import normalize_shop_domain
from .exceptions import RatingValidationError, ShopNotAuthorized
from .locks import product_lock

logger = logging.getLogger(__name__)

HISTORY_NAMESPACE = 'custom'
HISTORY_KEY = 'star_ratings'
AGGREGATE_NAMESPACE = 'reviews'
AVERAGE_KEY = 'average_rating'
COUNT_KEY = 'total_ratings'

MIN_RATING = 1
MAX_RATING = 5

ONE_DECIMAL = Decimal('0.1')


@dataclass
class RatingAggregate:
    """Rating history of a product and the statistics derived from it."""
    history: List[int] = field(default_factory=list)
    average: Decimal = Decimal('0')
    count: int = 0

    @property
    def average_display(self) -> str:
        """Average formatted with exactly one decimal, e.g. '4.0'"""
        return f"{self.average.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)}"


def is_valid_rating(value) -> bool:
    """A rating is a whole number of stars from 1 to 5 (bools are not ratings)"""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_RATING <= value <= MAX_RATING


def validate_product_id(product_id) -> str:
    if product_id is None or isinstance(product_id, bool):
        raise RatingValidationError('Missing product ID.')
    product_id = str(product_id).strip()
    if not product_id:
        raise RatingValidationError('Missing product ID.')
    return product_id


def validate_rating(rating) -> int:
    if not is_valid_rating(rating):
        raise RatingValidationError('Invalid rating (must be a whole number from 1 to 5).')
    return rating


def parse_history(raw_value, product_id=None) -> List[int]:
    """
    Deserialize a stored rating history.

    A missing value is an empty history. A value that is not a JSON array of
    ratings is treated as empty too; it is logged but never raised, so a
    corrupt metafield shows as "no ratings" instead of breaking the storefront.
    """
    if raw_value is None or raw_value == '':
        return []

    try:
        history = json.loads(raw_value) if isinstance(raw_value, str) else raw_value
    except (TypeError, ValueError) as e:
        logger.warning(f"Corrupt rating history for product {product_id}, treating as empty: {e}")
        return []

    if not isinstance(history, list) or not all(is_valid_rating(r) for r in history):
        logger.warning(
            f"Corrupt rating history for product {product_id}, treating as empty: {str(raw_value)[:200]}"
        )
        return []

    return history


def compute_average(history: List[int]) -> Decimal:
    """
    Mean rating rounded half-up to one decimal, or 0 for an empty history.

    Always computed from the exact integer sum, never from a stored average.
    """
    if not history:
        return Decimal('0')
    return (Decimal(sum(history)) / Decimal(len(history))).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


def build_aggregate(history: List[int]) -> RatingAggregate:
    return RatingAggregate(history=list(history), average=compute_average(history), count=len(history))


class RatingAggregator:
    """
    Reads and updates the ratings of products in one shop.

    Args:
        client: MetafieldClient (or compatible) for the shop
        shop_domain: Shop the client talks to, used to key submission locks
        serialize_submissions: Hold a per-product lock around read-modify-write
            (defaults to settings.RATINGS_SERIALIZE_SUBMISSIONS)
    """

    def __init__(self, client, shop_domain='', serialize_submissions: Optional[bool] = None):
        self.client = client
        self.shop_domain = shop_domain
        if serialize_submissions is None:
            serialize_submissions = getattr(settings, 'RATINGS_SERIALIZE_SUBMISSIONS', True)
        self.serialize_submissions = serialize_submissions

    def fetch_history(self, product_id) -> List[int]:
        """Current rating history; RemoteReadError propagates"""
        raw_value = self.client.get_field(product_id, HISTORY_NAMESPACE, HISTORY_KEY)
        return parse_history(raw_value, product_id=product_id)

    def read_aggregate(self, product_id) -> RatingAggregate:
        """
        Current ratings of a product.

        The recomputed average is also written back to the average metafield
        so a drifted value heals itself. That write is best effort: a failure
        is logged and the aggregate is still returned.
        """
        product_id = validate_product_id(product_id)
        aggregate = build_aggregate(self.fetch_history(product_id))

        try:
            self.client.set_field(
                product_id, AGGREGATE_NAMESPACE, AVERAGE_KEY,
                aggregate.average_display, FIELD_TYPE_DECIMAL,
            )
        except RemoteWriteError as e:
            logger.warning(f"Average write-back failed for product {product_id}: {e}")

        return aggregate

    def submit_rating(self, product_id, rating) -> RatingAggregate:
        """
        Append a rating and persist the new history, average and count.

        Every call appends; submitting the same rating twice counts twice.

        Raises:
            RatingValidationError: Bad product ID or rating (no Shopify calls made)
            RemoteReadError: The current history could not be fetched
            RemoteWriteError: One of the writes failed. Writes before it
                have already been applied and are not rolled back.
        """
        product_id = validate_product_id(product_id)
        rating = validate_rating(rating)

        if self.serialize_submissions:
            with product_lock(self.shop_domain, product_id):
                return self._append_rating(product_id, rating)
        return self._append_rating(product_id, rating)

    def _append_rating(self, product_id, rating) -> RatingAggregate:
        history = self.fetch_history(product_id)
        history.append(rating)
        aggregate = build_aggregate(history)

        self._write_aggregate(product_id, aggregate, include_history=True)

        logger.info(
            f"Rating {rating} recorded for product {product_id}: "
            f"average {aggregate.average_display} over {aggregate.count} ratings"
        )
        return aggregate

    def reconcile(self, product_id) -> RatingAggregate:
        """Recompute and rewrite the average and count from the stored history"""
        product_id = validate_product_id(product_id)
        aggregate = build_aggregate(self.fetch_history(product_id))
        self._write_aggregate(product_id, aggregate, include_history=False)
        return aggregate

    def _write_aggregate(self, product_id, aggregate, include_history):
        # History goes first: it is what later reads recompute from
        if include_history:
            self.client.set_field(
                product_id, HISTORY_NAMESPACE, HISTORY_KEY,
                json.dumps(aggregate.history), FIELD_TYPE_JSON,
            )
        self.client.set_field(
            product_id, AGGREGATE_NAMESPACE, AVERAGE_KEY,
            aggregate.average_display, FIELD_TYPE_DECIMAL,
        )
        self.client.set_field(
            product_id, AGGREGATE_NAMESPACE, COUNT_KEY,
            str(aggregate.count), FIELD_TYPE_INTEGER,
        )


def get_aggregator(shop_domain, store) -> RatingAggregator:
    """
    Build an aggregator for a shop using its stored credential.

    Raises:
        RatingValidationError: No shop domain given
        ShopNotAuthorized: The shop has no stored credential
    """
    shop_domain = normalize_shop_domain(shop_domain)
    if not shop_domain:
        raise RatingValidationError('Missing shop domain.')

    credential = store.load(shop_domain)
    if credential is None:
        raise ShopNotAuthorized(shop_domain)

    return RatingAggregator(MetafieldClient(credential), shop_domain=credential.shop_domain)
