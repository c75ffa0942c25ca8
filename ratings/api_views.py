"""
API views for product star ratings - called by the storefront widget.
"""
import logging
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from rest_framework.response import Response
from rest_framework.views import APIView

from shops.store import CredentialStore
from .serializers import (
    ProductRatingsSerializer,
    SubmitRatingSerializer,
    SubmitRatingResponseSerializer,
)
from .services import get_aggregator

logger = logging.getLogger(__name__)


class ShopContextMixin:
    """Resolves which shop a request is for and builds its aggregator"""

    credential_store_class = CredentialStore

    def get_credential_store(self):
        return self.credential_store_class()

    def get_aggregator(self, shop_domain):
        store = self.get_credential_store()
        return get_aggregator(shop_domain or store.default_shop_domain, store)


class ProductRatingsView(ShopContextMixin, APIView):
    """
    Current ratings for a product.

    GET /reviews/<productId>?shop=<shop domain>
    """

    @extend_schema(
        tags=['ratings'],
        description='Rating history and average for a product. '
                    'The shop parameter may be omitted when a single shop is configured.',
        parameters=[
            OpenApiParameter(
                name='shop',
                type=str,
                location=OpenApiParameter.QUERY,
                required=False,
                description='Shop domain (e.g. example.myshopify.com)'
            )
        ],
        responses=ProductRatingsSerializer,
    )
    def get(self, request, product_id):
        aggregator = self.get_aggregator(request.query_params.get('shop'))
        aggregate = aggregator.read_aggregate(product_id)
        return Response(ProductRatingsSerializer(aggregate).data)


class SubmitRatingView(ShopContextMixin, APIView):
    """
    Record a new star rating for a product.

    POST /submit-rating
    """

    @extend_schema(
        tags=['ratings'],
        description='Append a 1-5 star rating and return the new average and count.',
        request=SubmitRatingSerializer,
        responses=SubmitRatingResponseSerializer,
        examples=[
            OpenApiExample(
                name='submit_rating_example',
                summary='Rate a product four stars',
                value={
                    'productId': '8123456789',
                    'rating': 4,
                    'shopDomain': 'example.myshopify.com'
                },
                request_only=True,
            )
        ]
    )
    def post(self, request):
        serializer = SubmitRatingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        aggregator = self.get_aggregator(data.get('shopDomain'))
        aggregate = aggregator.submit_rating(data['productId'], data['rating'])

        return Response({
            'success': True,
            'newAvgRating': aggregate.average_display,
            'totalRatings': aggregate.count,
        })
