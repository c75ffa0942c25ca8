"""
Serializers for the rating endpoints.
"""
from rest_framework import serializers
from .services import is_valid_rating


class StarRatingField(serializers.Field):
    """
    Whole-number rating from 1 to 5.

    Stricter than IntegerField: strings, floats (even 4.0) and booleans are
    rejected rather than coerced.
    """

    default_error_messages = {
        'invalid': 'Rating must be a whole number from 1 to 5.',
    }

    def to_internal_value(self, data):
        if not is_valid_rating(data):
            self.fail('invalid')
        return data

    def to_representation(self, value):
        return value


class SubmitRatingSerializer(serializers.Serializer):
    """Body of POST /submit-rating"""

    productId = serializers.CharField(max_length=255)
    rating = StarRatingField()
    shopDomain = serializers.CharField(max_length=255, required=False, allow_blank=True)


class ProductRatingsSerializer(serializers.Serializer):
    """Response of GET /reviews/<productId>"""

    starRatings = serializers.ListField(child=serializers.IntegerField(), source='history')
    avgRating = serializers.FloatField(source='average')
    totalRatings = serializers.IntegerField(source='count')


class SubmitRatingResponseSerializer(serializers.Serializer):
    """Response of POST /submit-rating"""

    success = serializers.BooleanField()
    newAvgRating = serializers.CharField()
    totalRatings = serializers.IntegerField()
