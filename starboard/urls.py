"""
URL configuration for starboard project.
"""
from django.contrib import admin
from django.urls import path, include
from . import views

urlpatterns = [
    path('health/', views.health_check, name='health_check'),
    path('admin/', admin.site.urls),

    # OAuth install flow (/, /auth, /auth/callback)
    path('', include('shops.urls')),

    # Rating endpoints used by the storefront widget
    path('', include('ratings.urls')),

    # OpenAPI schema and docs
    path('api/', include(('api.urls', 'api'), namespace='api')),
]
