"""
Per-product locks for serializing rating submissions.

Only protects against races inside one process. Submissions handled by
different workers can still interleave, and the last history write wins.

Entries are reference counted and removed when their last holder releases
them, so the registry only holds products with a submission in flight.
"""
import threading
from contextlib import contextmanager

_registry_lock = threading.Lock()
# (shop, product) -> [lock, number of holders and waiters]
_product_locks = {}


def _acquire_entry(key):
    with _registry_lock:
        entry = _product_locks.get(key)
        if entry is None:
            entry = _product_locks[key] = [threading.Lock(), 0]
        entry[1] += 1
        return entry


def _release_entry(key, entry):
    with _registry_lock:
        entry[1] -= 1
        if entry[1] == 0:
            del _product_locks[key]


@contextmanager
def product_lock(shop_domain, product_id):
    """Hold the lock for one (shop, product) pair"""
    key = (shop_domain, str(product_id))
    entry = _acquire_entry(key)
    try:
        with entry[0]:
            yield
    finally:
        _release_entry(key, entry)
