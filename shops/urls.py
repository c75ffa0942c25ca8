from django.urls import path
from . import views

urlpatterns = [
    path('', views.app_entry, name='app_entry'),
    path('auth', views.auth_start, name='auth_start'),
    path('auth/callback', views.auth_callback, name='auth_callback'),
]
