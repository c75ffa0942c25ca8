from django.apps import AppConfig


class MetafieldsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'metafields'
