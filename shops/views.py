"""
Views for the Shopify app install (OAuth) flow.
"""
import logging
from urllib.parse import urlencode
from django.conf import settings
from django.http import HttpResponse, HttpResponseBadRequest, HttpResponseRedirect
from django.urls import reverse
from django.views.decorators.http import require_GET

from .oauth import AuthorizationError, authorize_shop, build_authorize_url, generate_state
from .store import CredentialStore, is_valid_shop_domain, normalize_shop_domain

logger = logging.getLogger(__name__)

OAUTH_STATE_SESSION_KEY = 'shopify_oauth_state'


def _get_redirect_uri(request):
    if settings.SHOPIFY_REDIRECT_URI:
        return settings.SHOPIFY_REDIRECT_URI
    return request.build_absolute_uri(reverse('auth_callback'))


@require_GET
def app_entry(request):
    """Shopify opens the app at / after install; send the merchant into OAuth"""
    shop = request.GET.get('shop')
    if not shop:
        return HttpResponseBadRequest('Missing shop parameter.')
    return HttpResponseRedirect(f"{reverse('auth_start')}?{urlencode({'shop': shop})}")


@require_GET
def auth_start(request):
    """Redirect the merchant to Shopify to approve the app"""
    shop = request.GET.get('shop')
    if not shop:
        return HttpResponseBadRequest('Missing shop parameter')
    if not is_valid_shop_domain(shop):
        return HttpResponseBadRequest('Invalid shop parameter')

    state = generate_state()
    request.session[OAUTH_STATE_SESSION_KEY] = state

    install_url = build_authorize_url(normalize_shop_domain(shop), _get_redirect_uri(request), state)
    return HttpResponseRedirect(install_url)


@require_GET
def auth_callback(request):
    """
    OAuth callback: exchange the code for an access token and store it.

    The state nonce is only checked when this browser session started the
    flow; installs initiated from the Shopify admin arrive without one.
    """
    shop = request.GET.get('shop')
    code = request.GET.get('code')
    if not shop or not code:
        return HttpResponseBadRequest('Missing parameters')
    if not is_valid_shop_domain(shop):
        return HttpResponseBadRequest('Invalid shop parameter')

    expected_state = request.session.pop(OAUTH_STATE_SESSION_KEY, None)
    if expected_state and request.GET.get('state') != expected_state:
        logger.warning(f"OAuth state mismatch for shop {shop}")
        return HttpResponseBadRequest('Invalid state parameter')

    try:
        authorize_shop(normalize_shop_domain(shop), code, CredentialStore())
    except AuthorizationError as e:
        logger.error(f"OAuth failed for shop {shop}: {e}")
        return HttpResponse('OAuth failed', status=500, content_type='text/plain')

    return HttpResponse(
        'App installed! Credentials saved. Reviews endpoint now working.',
        content_type='text/plain'
    )
