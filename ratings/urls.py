from django.urls import path
from . import api_views

urlpatterns = [
    path('reviews/<str:product_id>', api_views.ProductRatingsView.as_view(), name='product_ratings'),
    path('submit-rating', api_views.SubmitRatingView.as_view(), name='submit_rating'),
]
