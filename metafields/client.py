"""
Client for Shopify product metafields (Admin REST API).

Every call is a single round trip: no retries, no batching. Writing several
fields is several independent requests, so callers must not assume they
land together.
"""
import logging
from urllib.parse import quote

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

FIELD_TYPE_JSON = 'json'
FIELD_TYPE_DECIMAL = 'number_decimal'
FIELD_TYPE_INTEGER = 'number_integer'

FIELD_TYPES = (FIELD_TYPE_JSON, FIELD_TYPE_DECIMAL, FIELD_TYPE_INTEGER)

# Plural path segment per owner resource for nested metafield reads
OWNER_RESOURCE_PATHS = {
    'product': 'products',
    'variant': 'variants',
    'collection': 'collections',
    'customer': 'customers',
    'order': 'orders',
}


class MetafieldError(Exception):
    """Base exception for metafield API errors."""

    def __init__(self, message, status_code=None, body=''):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RemoteReadError(MetafieldError):
    """A metafield could not be fetched (network, HTTP or decode failure)."""


class RemoteWriteError(MetafieldError):
    """Shopify did not accept a metafield write."""


class MetafieldClient:
    """Read and write metafields for one shop."""

    def __init__(self, credential, api_version=None, timeout=None):
        self.shop_domain = credential.shop_domain
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout if timeout is not None else settings.SHOPIFY_REQUEST_TIMEOUT
        self.base_url = f"https://{self.shop_domain}/admin/api/{self.api_version}"
        self.headers = {
            'X-Shopify-Access-Token': credential.access_token,
            'Content-Type': 'application/json',
        }

    def _make_request(self, method, endpoint, **kwargs):
        url = f"{self.base_url}{endpoint}"
        kwargs.setdefault('headers', self.headers)
        kwargs.setdefault('timeout', self.timeout)
        return requests.request(method, url, **kwargs)

    def get_field(self, entity_id, namespace, key, owner_resource='product'):
        """
        Fetch the raw value of one metafield.

        Args:
            entity_id: ID of the owning resource (e.g. product ID)
            namespace: Metafield namespace, e.g. 'custom'
            key: Metafield key, e.g. 'star_ratings'
            owner_resource: Owning resource type

        Returns:
            str or None: The stored value as text, or None if the field does not exist

        Raises:
            RemoteReadError: If the request fails or the response cannot be read
        """
        resource_path = OWNER_RESOURCE_PATHS.get(owner_resource)
        if resource_path is None:
            raise ValueError(f"Unsupported owner resource: {owner_resource}")

        # IDs are opaque; escape them so they stay one path segment
        endpoint = f"/{resource_path}/{quote(str(entity_id), safe='')}/metafields.json"

        try:
            response = self._make_request(
                'get', endpoint, params={'namespace': namespace, 'key': key}
            )
        except requests.RequestException as e:
            logger.error(f"Metafield read failed: {namespace}.{key} on {owner_resource} {entity_id} - {str(e)}")
            raise RemoteReadError(f"Failed to fetch metafield {namespace}.{key}: {e}")

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Metafield read HTTP {response.status_code}: {namespace}.{key} "
                f"on {owner_resource} {entity_id} - {response.text[:500]}"
            )
            raise RemoteReadError(
                f"Failed to fetch metafield {namespace}.{key}: HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            metafields = response.json().get('metafields', [])
        except (ValueError, AttributeError):
            logger.error(f"Metafield read returned invalid JSON: {namespace}.{key} on {owner_resource} {entity_id}")
            raise RemoteReadError(
                f"Invalid response fetching metafield {namespace}.{key}",
                status_code=response.status_code,
                body=response.text,
            )

        for field in metafields or []:
            if field.get('namespace') == namespace and field.get('key') == key:
                return field.get('value')

        return None

    def set_field(self, entity_id, namespace, key, value, field_type, owner_resource='product'):
        """
        Create or update one metafield.

        Args:
            entity_id: ID of the owning resource
            namespace: Metafield namespace
            key: Metafield key
            value: Serialized value (Shopify stores metafield values as text)
            field_type: One of 'json', 'number_decimal', 'number_integer'
            owner_resource: Owning resource type

        Raises:
            RemoteWriteError: If Shopify responds with a non-success status or cannot be reached
        """
        if field_type not in FIELD_TYPES:
            raise ValueError(f"Unsupported metafield type: {field_type}")

        payload = {
            'metafield': {
                'namespace': namespace,
                'key': key,
                'value': value,
                'type': field_type,
                'owner_resource': owner_resource,
                'owner_id': entity_id,
            }
        }

        try:
            response = self._make_request('post', '/metafields.json', json=payload)
        except requests.RequestException as e:
            logger.error(f"Metafield write failed: {namespace}.{key} on {owner_resource} {entity_id} - {str(e)}")
            raise RemoteWriteError(f"Failed to save metafield {namespace}.{key}: {e}")

        if not 200 <= response.status_code < 300:
            logger.error(
                f"Metafield write HTTP {response.status_code}: {namespace}.{key} "
                f"on {owner_resource} {entity_id} - {response.text[:500]}"
            )
            raise RemoteWriteError(
                f"Failed to save metafield {namespace}.{key}: HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        logger.debug(f"Saved metafield {namespace}.{key} on {owner_resource} {entity_id}")
