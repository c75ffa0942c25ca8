"""
Recompute the average and count metafields from the stored rating history.

Use after a failed submission left the derived fields behind the history.

Usage:
    python manage.py reconcile_ratings 8123456789 8123456790 --shop example.myshopify.com
    python manage.py reconcile_ratings 8123456789              # single-shop setups
"""
from django.core.management.base import BaseCommand, CommandError

from metafields.client import MetafieldError
from ratings.exceptions import RatingError
from ratings.services import get_aggregator
from shops.store import CredentialStore


class Command(BaseCommand):
    help = 'Rewrite product rating average/count metafields from the stored history'

    def add_arguments(self, parser):
        parser.add_argument('product_ids', nargs='+', help='Shopify product IDs')
        parser.add_argument(
            '--shop',
            default=None,
            help='Shop domain (defaults to SHOPIFY_SHOP_DOMAIN)',
        )

    def handle(self, *args, **options):
        store = CredentialStore()

        try:
            aggregator = get_aggregator(options['shop'] or store.default_shop_domain, store)
        except RatingError as e:
            raise CommandError(str(e))

        errors = []
        for product_id in options['product_ids']:
            try:
                aggregate = aggregator.reconcile(product_id)
            except (MetafieldError, RatingError) as e:
                errors.append(f"{product_id}: {e}")
                continue

            self.stdout.write(
                f"{product_id}: average {aggregate.average_display} over {aggregate.count} ratings"
            )

        if errors:
            for error in errors:
                self.stderr.write(self.style.ERROR(f"  {error}"))
            raise CommandError(f"{len(errors)} product(s) could not be reconciled")

        self.stdout.write(self.style.SUCCESS('Done.'))
