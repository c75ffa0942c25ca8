"""
In-memory stand-in for MetafieldClient, for tests.
"""
from .client import RemoteReadError, RemoteWriteError


class InMemoryMetafieldClient:
    """
    Stores metafields in a dict keyed by (entity_id, namespace, key).

    Failures can be injected per field with fail_writes / fail_reads, and
    every call is recorded in `calls` as (method, entity_id, namespace, key).
    """

    def __init__(self, fields=None):
        self.fields = dict(fields or {})
        self.types = {}
        self.calls = []
        self.fail_reads = set()
        self.fail_writes = set()

    def get_field(self, entity_id, namespace, key, owner_resource='product'):
        self.calls.append(('get', str(entity_id), namespace, key))
        if (namespace, key) in self.fail_reads:
            raise RemoteReadError(f"Failed to fetch metafield {namespace}.{key}: HTTP 503",
                                  status_code=503, body='Service Unavailable')
        return self.fields.get((str(entity_id), namespace, key))

    def set_field(self, entity_id, namespace, key, value, field_type, owner_resource='product'):
        self.calls.append(('set', str(entity_id), namespace, key))
        if (namespace, key) in self.fail_writes:
            raise RemoteWriteError(f"Failed to save metafield {namespace}.{key}: HTTP 422",
                                   status_code=422, body='{"errors": {"value": ["is invalid"]}}')
        self.fields[(str(entity_id), namespace, key)] = value
        self.types[(str(entity_id), namespace, key)] = field_type

    @property
    def writes(self):
        return [call for call in self.calls if call[0] == 'set']
