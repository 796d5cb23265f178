"""Record id generation for the uuid and cuid strategies.

Autoincrement ids are left to the database.
"""

import itertools
import os
import secrets
import threading
import time
import uuid

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_counter = itertools.count(secrets.randbelow(36**4))
_counter_lock = threading.Lock()


def _base36(value: int, width: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)).rjust(width, "0")[-width:]


def new_uuid() -> str:
    return str(uuid.uuid4())


def new_cuid() -> str:
    """Generate a 25-character collision-resistant id.

    Format: ``c`` + timestamp(8) + counter(4) + fingerprint(4) + random(8),
    all base36.
    """
    with _counter_lock:
        count = next(_counter) % 36**4
    timestamp = _base36(int(time.time() * 1000), 8)
    fingerprint = _base36(os.getpid(), 2) + _base36(threading.get_ident(), 2)
    random_part = _base36(secrets.randbits(42), 8)
    return f"c{timestamp}{_base36(count, 4)}{fingerprint}{random_part}"


def generate_id(strategy: str) -> str | None:
    """Return a new id for the strategy, or None when the database assigns it."""
    if strategy == "uuid":
        return new_uuid()
    if strategy == "cuid":
        return new_cuid()
    return None
