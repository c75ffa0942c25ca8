"""Django admin configuration for shop credentials"""
from django.contrib import admin
from .models import ShopCredential


@admin.register(ShopCredential)
class ShopCredentialAdmin(admin.ModelAdmin):
    """Installed shops. Tokens are written by the OAuth flow and never displayed."""

    list_display = ['shop_domain', 'scope', 'created_at', 'updated_at']
    search_fields = ['shop_domain']
    readonly_fields = ['shop_domain', 'scope', 'created_at', 'updated_at']
    exclude = ['access_token_encrypted']

    def has_add_permission(self, request):
        return False
