"""
Shopify OAuth install flow.

A shop starts out unauthorized. Exchanging the one-time code from the
install redirect for an access token and saving it to the credential
store authorizes it. Re-running the flow overwrites the stored token.
"""
import logging
import secrets
from urllib.parse import urlencode

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class AuthorizationError(Exception):
    """Raised when the authorization code cannot be exchanged for a token."""

    def __init__(self, message, status_code=None, body=''):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def generate_state():
    """Random nonce for the authorize redirect"""
    return secrets.token_hex(16)


def build_authorize_url(shop_domain, redirect_uri, state):
    """
    Build the URL the merchant is sent to for approving the install.

    Args:
        shop_domain: Shop domain, e.g. example.myshopify.com
        redirect_uri: Absolute URL of our /auth/callback endpoint
        state: Nonce echoed back by Shopify on the callback

    Returns:
        str: Authorize URL on the shop's admin
    """
    query = urlencode({
        'client_id': settings.SHOPIFY_API_KEY,
        'scope': settings.SHOPIFY_SCOPES,
        'redirect_uri': redirect_uri,
        'state': state,
    })
    return f"https://{shop_domain}/admin/oauth/authorize?{query}"


def exchange_code(shop_domain, code):
    """
    Exchange a one-time authorization code for a long-lived access token.

    Returns:
        dict: Token response with at least 'access_token'

    Raises:
        AuthorizationError: If Shopify rejects the code or cannot be reached
    """
    url = f"https://{shop_domain}/admin/oauth/access_token"
    payload = {
        'client_id': settings.SHOPIFY_API_KEY,
        'client_secret': settings.SHOPIFY_API_SECRET,
        'code': code,
    }

    try:
        response = requests.post(url, json=payload, timeout=settings.SHOPIFY_REQUEST_TIMEOUT)
    except requests.RequestException as e:
        logger.error(f"Token exchange request failed for {shop_domain}: {str(e)}")
        raise AuthorizationError(f"Token exchange request failed: {e}")

    if not 200 <= response.status_code < 300:
        logger.error(
            f"Token exchange rejected for {shop_domain}: "
            f"HTTP {response.status_code} - {response.text[:500]}"
        )
        raise AuthorizationError(
            f"Token exchange failed with HTTP {response.status_code}",
            status_code=response.status_code,
            body=response.text,
        )

    try:
        token_data = response.json()
    except ValueError:
        raise AuthorizationError(
            "Token exchange returned invalid JSON",
            status_code=response.status_code,
            body=response.text,
        )

    if not isinstance(token_data, dict) or not token_data.get('access_token'):
        raise AuthorizationError(
            "Token exchange response did not include an access token",
            status_code=response.status_code,
            body=response.text,
        )

    return token_data


def authorize_shop(shop_domain, code, store):
    """
    Complete the install for a shop and persist its credential.

    Nothing is stored when the exchange fails, so the shop stays unauthorized.

    Args:
        shop_domain: Shop domain from the callback
        code: One-time authorization code from the callback
        store: CredentialStore to save the token to

    Returns:
        Credential: The saved credential
    """
    token_data = exchange_code(shop_domain, code)
    credential = store.save(
        shop_domain,
        token_data['access_token'],
        scope=token_data.get('scope', ''),
    )
    logger.info(f"Shop {credential.shop_domain} authorized")
    return credential
